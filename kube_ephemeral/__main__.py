"""Allow ``python -m kube_ephemeral``."""

import sys

from kube_ephemeral.cli import main

sys.exit(main())
