import os

import redis
from rq import Queue

# Redis connection shared by the API (enqueue) and the worker
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
redis_conn = redis.from_url(REDIS_URL)

# Deploy and provisioning jobs
queue = Queue("default", connection=redis_conn)
