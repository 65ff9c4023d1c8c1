"""Entry point for keyvault."""

from .cli import cli


def main() -> None:
    """Entry point for the keyvault CLI."""
    cli()


if __name__ == "__main__":
    main()
