"""
Entry point for running the app as a module: python -m threat_classifier
"""

import sys
from threat_classifier.cli import main

if __name__ == "__main__":
    sys.exit(main())
