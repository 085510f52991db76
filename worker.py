from rq import Worker

from app import create_app
from queue_config import queue

app = create_app()

if __name__ == "__main__":
    with app.app_context():
        worker = Worker([queue], connection=queue.connection)
        worker.work()
