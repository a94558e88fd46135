from ablycli.shared.output.json_formatter import format_json, is_json_data
from ablycli.shared.output.sink import OutputMode, OutputSink

__all__ = [
    "OutputMode",
    "OutputSink",
    "format_json",
    "is_json_data",
]
