# SPDX-License-Identifier: LGPL-3.0-or-later
# ovfdeploy/__main__.py
from .cli.main import main

if __name__ == "__main__":
    main()
