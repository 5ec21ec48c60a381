"""gifclip package root.

Export primary classes and CLI for convenience when installed via pip.
"""

from .cli import main as cli_main  # noqa: F401
from .config_manager import ConfigManager  # noqa: F401
from .conversion_pipeline import ConversionPipeline  # noqa: F401
from .error_handler import ConversionError, ErrorCategory, ErrorHandler  # noqa: F401
from .models import ConversionRequest, ConversionResult, SourceKind  # noqa: F401
from .gif_processing.gif_generator import GifGenerator, TranscodeState  # noqa: F401
from .retention_sweeper import RetentionPolicy, RetentionScheduler, sweep  # noqa: F401
