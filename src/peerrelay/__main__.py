"""Allow ``python -m peerrelay``."""

from peerrelay.cli import main

if __name__ == "__main__":
    main()
