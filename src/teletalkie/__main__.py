"""Entry point for `python -m teletalkie`."""

from teletalkie.client.cli_client import main

if __name__ == "__main__":
    main()
