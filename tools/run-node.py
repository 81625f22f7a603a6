#!/usr/bin/env python3
from consul_node.cli import main


if __name__ == "__main__":
    raise SystemExit(main())
