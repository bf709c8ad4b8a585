"""Allow ``python -m live_detector``."""

from live_detector.main import main

if __name__ == "__main__":
    main()
