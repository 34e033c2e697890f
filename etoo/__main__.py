"""
Copyright (c) 2025 Eric C. Mumford (@heymumford)
This file is part of ETOO, licensed under the MIT License.
See LICENSE file for details.
"""

from etoo.cli import app


def main():
    """Main entry point for the ETOO command line."""
    app()


if __name__ == "__main__":
    main()
