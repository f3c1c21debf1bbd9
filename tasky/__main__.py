import uvicorn

from tasky.core import get_tasky_config
from tasky.tasky import TaskyService


def main() -> None:
    cfg = get_tasky_config()
    service = TaskyService(settings=cfg)
    uvicorn.run(service.app, host=cfg.HOST, port=cfg.PORT, log_config=None)


if __name__ == "__main__":
    main()
