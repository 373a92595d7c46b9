from datetime import datetime
from pathlib import Path
import logging


def setup_logging(logs_dir: str | Path | None = None, level=logging.DEBUG) -> Path | None:
    '''
    Logs to a timestamped file in `logs_dir` (when given) and to the console.
    Returns the log file path.
    '''
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    log_path = None
    if logs_dir is not None:
        logs_dir = Path(logs_dir)
        if logs_dir.exists() and not logs_dir.is_dir():
            raise FileExistsError(f"{logs_dir} exists but is not a directory")
        logs_dir.mkdir(parents=True, exist_ok=True)
        log_path = logs_dir / 'offboard_node_{:%Y-%m-%d-%H%M%S}.log'.format(datetime.now())
        handlers.append(logging.FileHandler(log_path, encoding='utf-8'))

    logging.basicConfig(format='%(asctime)s %(message)s', level=level, handlers=handlers, force=True)
    # keep the MAVSDK gRPC client quiet
    logging.getLogger("mavsdk").setLevel(logging.ERROR)
    return log_path
