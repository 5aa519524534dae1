from __future__ import annotations

from nudge.config.settings import Settings
from nudge.core.loop import configure_logging, run_loop


def main() -> None:
    settings = Settings.load()
    configure_logging(settings.log_level)
    run_loop(settings)


if __name__ == "__main__":
    main()
