from typing import Any, List


class BaseRenderer:
    """
    Base class for the text blocks written by a render invocation. Each
    renderer turns already-gathered, read-only data into output lines.
    """

    def __init__(self, name: str):
        self.name = name

    def render_lines(self, *args: Any, **kwargs: Any) -> List[str]:
        """
        Abstract method: Subclasses must implement this to return the output
        lines (without trailing newlines) for their block.
        """
        raise NotImplementedError(
            "Subclasses must implement render_lines to provide their block of output."
        )
