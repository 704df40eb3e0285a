"""Infrastructure: database engines and SQLModel repositories."""
