"""python -m peercall"""

import sys

from peercall.main import main

sys.exit(main())
