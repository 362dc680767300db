"""Allow ``python -m runtimectl``."""

from runtimectl.main import main

main()
