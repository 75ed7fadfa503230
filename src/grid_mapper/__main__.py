"""Main entry point for the grid_mapper package."""
from grid_mapper.cli import cli


def main():
    """Main entry point function."""
    cli(prog_name="grid-mapper")


if __name__ == "__main__":
    main()
