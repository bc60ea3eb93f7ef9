"""
Main entry point for the NetNavigator command line.
"""
import sys

from netnavigator.app import main

if __name__ == "__main__":
    sys.exit(main())
