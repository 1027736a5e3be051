# (C) 2025 Noverse. All Rights Reserved.
# https://github.com/nohuto
# https://discord.gg/E2ybG4j9jU

from .cli import main

if __name__ == "__main__":
    raise SystemExit(main())
