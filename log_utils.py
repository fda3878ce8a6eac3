import logging
import os


def env_verbose(var: str = "INSIDEOUT_VERBOSE") -> bool:
    """true when the environment asks for verbose logging"""
    return os.environ.get(var, "").strip().lower() in ("1", "true", "yes", "on")


def get_logger(name: str, verbose: bool = False) -> logging.Logger:
    """return a named logger, attaching a stream handler once when verbose"""
    logger = logging.getLogger(name)
    if verbose:
        logger.setLevel(logging.DEBUG)
        if not logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
            logger.addHandler(handler)
    return logger
