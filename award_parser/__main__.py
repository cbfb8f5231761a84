"""
Module entry point for: python -m award_parser

Allows running the extractor directly as a module:
    python -m award_parser extract <path> [options]
    python -m award_parser batch <directory> [options]
    python -m award_parser serve [options]
"""

from .cli import cli


def main():
    cli()


if __name__ == "__main__":
    main()
