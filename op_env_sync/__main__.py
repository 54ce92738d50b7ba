import sys

from op_env_sync.main import main

sys.exit(main())
