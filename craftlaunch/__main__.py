"""
Command line entry point: ``python -m craftlaunch [config-path]``.

Installs the configured version and launches it with the player identity
found in the configuration.
"""
import asyncio
import logging
import sys
from typing import List, Optional

from .command import LaunchIdentity
from .config import load_config
from .errors import CraftLaunchError
from .launcher import Launcher

log = logging.getLogger(__name__)


async def main(argv: Optional[List[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    config = load_config(args[0] if args else None)

    launcher = Launcher(
        config.version,
        config.install_dir,
        java_path=config.java_path,
        use_ely_by=config.use_ely_by,
        authlib_injector_path=config.authlib_injector_path,
        features=config.features,
        install_java=config.install_java,
        progress=config.progress,
    )
    identity = LaunchIdentity(config.auth_player_name, config.auth_uuid, config.auth_access_token)

    await launcher.install()
    return await launcher.run(identity, jvm_args=config.jvm_args)


def run() -> None:
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    try:
        exit_code = asyncio.run(main())
    except KeyboardInterrupt:
        log.info("Launch cancelled by user.")
        exit_code = 1
    except CraftLaunchError:
        log.exception("--- An error occurred during setup or launch ---")
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    run()
