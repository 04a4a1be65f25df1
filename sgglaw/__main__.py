# sgglaw/__main__.py
"""python -m sgglaw <comando> (mesmo que python -m sgglaw.run)."""
import sys

from sgglaw.run import main

sys.exit(main())
