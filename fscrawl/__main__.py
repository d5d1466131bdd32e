# fscrawl/__main__.py
from fscrawl.cli.cli import main

if __name__ == "__main__":
    main()
