"""Allow running as: python -m gap_analysis"""

import sys

from gap_analysis.main import cli

if __name__ == "__main__":
    sys.exit(cli())
