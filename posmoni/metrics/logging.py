import dataclasses
import json
import logging
from typing import Mapping, Iterator, Iterable, Any

from posmoni import variables


def convert_to_serializable(data: Any) -> Any:
    if isinstance(data, bytes):
        return '0x' + data.hex()
    if isinstance(data, BaseException):
        return repr(data)
    if dataclasses.is_dataclass(data) and not isinstance(data, type):
        return convert_to_serializable(dataclasses.asdict(data))
    if isinstance(data, Mapping):
        return {key: convert_to_serializable(value) for key, value in data.items()}
    if isinstance(data, Iterator):
        return (convert_to_serializable(item) for item in data)
    if isinstance(data, Iterable) and not isinstance(data, (str, bytes)):
        return type(data)(convert_to_serializable(item) for item in data)  # type: ignore
    return data


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        message = record.msg if isinstance(record.msg, dict) else {'msg': record.getMessage()}

        message = convert_to_serializable(message)

        if record.exc_info:
            message['exc_info'] = self.formatException(record.exc_info)

        to_json_msg = json.dumps({
            'timestamp': int(record.created),
            'name': record.name,
            'levelname': record.levelname,
            'threadName': record.threadName,
            'funcName': record.funcName,
            'lineno': record.lineno,
            'module': record.module,
            'pathname': record.pathname,
            **message,
        }, default=str)
        return to_json_msg


handler = logging.StreamHandler()
handler.setFormatter(JsonFormatter())

logging.basicConfig(
    level=variables.LOG_LEVEL,
    handlers=[handler],
)
