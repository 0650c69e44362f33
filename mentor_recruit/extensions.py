from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from redis import Redis
from rq import Queue
from flask import current_app

# keyword arguments understood by Queue.enqueue_in but not by the job function
RQ_KEYS = {'job_timeout', 'timeout', 'at_front', 'depends_on', 'result_ttl', 'ttl', 'meta', 'description'}


class RQWrapper:
    def __init__(self):
        self.redis = None
        self.queue = None

    def init_app(self, app):
        try:
            self.redis = Redis.from_url(app.config.get("REDIS_URL"))
            self.queue = Queue("default", connection=self.redis)
        except Exception:
            # no Redis (dev machine, tests): run jobs synchronously instead
            app.logger.exception('Redis/RQ init failed, falling back to sync execution')
            self.redis = None
            self.queue = None

    def _run_sync(self, args, kwargs):
        func = args[0] if args else None
        func_args = args[1:] if len(args) > 1 else ()
        safe_kwargs = {k: v for k, v in kwargs.items() if k not in RQ_KEYS}
        if not func:
            return None
        try:
            return func(*func_args, **safe_kwargs)
        except Exception:
            current_app.logger.exception('Synchronous fallback execution failed')
        return None

    def enqueue_in(self, delay, *args, **kwargs):
        # Prefer scheduling on RQ if available, but fall back to calling
        # the function synchronously if Redis/RQ is not reachable.
        if not self.queue:
            return self._run_sync(args, kwargs)
        try:
            return self.queue.enqueue_in(delay, *args, **kwargs)
        except Exception:
            current_app.logger.exception('RQ enqueue_in failed, falling back to sync execution')
            return self._run_sync(args, kwargs)


db = SQLAlchemy()
login_manager = LoginManager()
rq = RQWrapper()
