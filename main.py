import sys

from loguru import logger

from deployer.config import load_config
from deployer.log import DeploymentLogger
from deployer.pipeline import create_deployer


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    if argv and argv[0] in ("-h", "--help"):
        print(
            "Usage: python main.py [--port 8080] [--environment staging] "
            "[--mode robust|local] [--runtime sdk|cli] ..."
        )
        return 0

    config = load_config(argv)

    # DeploymentLogger installs its own console sink
    logger.remove()
    log = DeploymentLogger(config.deployment_id, config.log_file)

    try:
        outcome = create_deployer(config, logger=log).deploy()
    except Exception as e:
        log.error(f"Fatal error during execution: {e}")
        return 1
    finally:
        log.close()

    return 0 if outcome.success else 1


if __name__ == "__main__":
    sys.exit(main())
