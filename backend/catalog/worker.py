import os

import django
import redis
from rq import Worker


def main() -> None:
    os.environ.setdefault("DJANGO_SETTINGS_MODULE", "storybooker.settings")
    django.setup()
    redis_url = os.environ.get("STORYBOOKER_JOBS_REDIS_URL", "redis://redis:6379/0")
    conn = redis.Redis.from_url(redis_url)
    worker = Worker(["default"], connection=conn)
    worker.work()


if __name__ == "__main__":
    main()
