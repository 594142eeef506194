import time
import logging
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from pythonjsonlogger import jsonlogger
from folder_graph.config import settings

class JSONLogFormatter(jsonlogger.JsonFormatter):
    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        if not log_record.get('timestamp'):
            log_record['timestamp'] = time.strftime(
                '%Y-%m-%dT%H:%M:%S', time.localtime(record.created)
            )
        if log_record.get('level'):
            log_record['level'] = log_record['level'].upper()
        else:
            log_record['level'] = record.levelname

def setup_logging():
    logger = logging.getLogger()
    # uvicorn reload imports the app twice
    if any(isinstance(h.formatter, JSONLogFormatter) for h in logger.handlers):
        return
    logHandler = logging.StreamHandler()
    formatter = JSONLogFormatter('%(timestamp)s %(level)s %(name)s %(message)s')
    logHandler.setFormatter(formatter)
    logger.addHandler(logHandler)
    logger.setLevel(settings.LOG_LEVEL)

class PerformanceMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time

        # Tree reads over large spaces are the usual offenders
        if process_time > 1.0:
            logging.getLogger("performance").warning(
                f"Slow Request: {request.method} {request.url.path} took {process_time:.4f}s"
            )

        response.headers["X-Process-Time"] = str(process_time)
        return response
