"""Logging formatters and filters for stream routing."""

import logging


class StreamFormatter(logging.Formatter):
    """Logging formatter that prepends stream tags based on extra parameter."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with stream prefix if present.

        Parameters
        ----------
        record : logging.LogRecord
            Log record to format

        Returns
        -------
        str
            Formatted log message with optional stream prefix
        """
        msg = super().format(record)
        stream = getattr(record, "stream", None)

        if stream == "remote":
            return f"[remote] {msg}"

        return msg


class StreamRoutingFilter(logging.Filter):
    """Route records to stdout or stderr handlers.

    Records logged with ``extra={"stream": "stdout"}`` go to stdout; all
    others (including remote command output) go to stderr.

    Parameters
    ----------
    stream_type : str
        Stream type to allow: "stdout" or "stderr"
    """

    def __init__(self, stream_type: str) -> None:
        super().__init__()
        self.stream_type = stream_type

    def filter(self, record: logging.LogRecord) -> bool:
        record_stream = getattr(record, "stream", None)

        if record_stream == "stdout":
            return self.stream_type == "stdout"

        return self.stream_type == "stderr"
