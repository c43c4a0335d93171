"""Command-line entry point for the directory mirror."""
from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path

from .config import ConfigError, load_config
from .errors import InitializationFailure
from .host import LocalHost, SignalType
from .mirror import DirectoryMirror
from .properties import PropertiesResource

logger = logging.getLogger("dirmirror")


def main() -> None:
    parser = argparse.ArgumentParser(description="Mirror a directory tree as observable resources")
    parser.add_argument(
        "--config",
        default="config.yaml",
        help="Path to the YAML configuration file (default: %(default)s)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )

    config_path = Path(args.config)
    try:
        app_config = load_config(config_path)
    except ConfigError as exc:
        logging.error("%s", exc)
        raise SystemExit(2) from exc

    host = LocalHost()
    if app_config.properties is not None:
        props = app_config.properties
        host.add_child("", props.name, PropertiesResource(dict(props.values), separator=props.separator))

    mirror_cfg = app_config.mirror
    try:
        mirror = DirectoryMirror(
            mirror_cfg.name,
            mirror_cfg.root_path,
            host,
            backend=mirror_cfg.backend,
            poll_interval=mirror_cfg.poll_interval,
        )
    except InitializationFailure as exc:
        logging.error("%s", exc)
        raise SystemExit(2) from exc

    host.add_listener(_log_signal)

    try:
        while mirror.is_watching:
            time.sleep(1.0)
        if mirror.fault is not None:
            logging.error("Mirror stopped following changes: %s", mirror.fault)
    except KeyboardInterrupt:
        logging.info("Mirror interrupted by user")
    finally:
        mirror.close()


def _log_signal(signal: SignalType, path: str) -> None:
    logger.info("Resource /%s %s", path, signal.value)


if __name__ == "__main__":
    main()
