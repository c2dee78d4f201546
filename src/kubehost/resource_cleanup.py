"""Best-effort cleanup of backend leftovers.

Operations here log errors but never raise.
"""

from kubehost._logging import get_logger
from kubehost.command_runner import ExecRunner
from kubehost.exceptions import CommandError

logger = get_logger(__name__)


async def delete_orphaned_container(name: str, docker_bin: str = "docker") -> bool:
    """Force-remove a container (and its anonymous volumes) named ``name``.

    Used when a host record can no longer be loaded but its container may
    still be running.

    Returns:
        True if the container runtime removed it, False otherwise
    """
    try:
        result = await ExecRunner().run_cmd([docker_bin, "rm", "-f", "-v", name])
    except CommandError as e:
        logger.info(
            "Orphaned container cleanup failed",
            extra={"host": name, "exit_code": e.result.exit_code, "stderr": e.result.stderr.strip()},
        )
        return False
    except OSError as e:
        logger.info("Orphaned container cleanup error", extra={"host": name, "error": str(e)})
        return False

    logger.debug("Orphaned container removed", extra={"host": name, "output": result.stdout.strip()})
    return True
