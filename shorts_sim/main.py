from __future__ import annotations

from shorts_sim.config import load_settings
from shorts_sim.runtime.app import run_main


def main() -> None:
    run_main(load_settings())


if __name__ == "__main__":
    main()
