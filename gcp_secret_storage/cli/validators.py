"""Input validation for CLI arguments."""
import re
import sys

KEY_PATTERN = re.compile(r'^[a-zA-Z0-9_-]+$')


def validate_key_name(name: str) -> None:
    """
    Validate a key name against Secret Manager's secret id rules.

    Secret ids allow only [a-zA-Z0-9_-], so keys containing "/" or "." cannot
    be stored as-is.

    Raises:
        SystemExit with code 2 if validation fails
    """
    if not name:
        print("Error: Key name cannot be empty", file=sys.stderr)
        sys.exit(2)

    if not KEY_PATTERN.match(name):
        print(f"Error: Invalid key name '{name}'", file=sys.stderr)
        print("\nAllowed characters: letters, numbers, underscores (_), hyphens (-)", file=sys.stderr)
        print("Not allowed: slashes (/), dots (.), spaces, other special characters", file=sys.stderr)
        sys.exit(2)


def validate_prefix(prefix: str) -> None:
    """Validate a list prefix. Empty is allowed and lists every key."""
    if prefix and not KEY_PATTERN.match(prefix):
        print(f"Error: Invalid prefix '{prefix}'", file=sys.stderr)
        sys.exit(2)
