"""
Conversion Pipeline
Validator -> Acquirer -> Prober -> Transcoder -> Store for one clip request.
Each stage can fail on its own; the first failure aborts the request and every
resource the request acquired is released on the way out.
"""

import time
import logging
from typing import Any, Callable, Dict, Optional

from .artifact_store import ArtifactStore
from .config_manager import ConfigManager
from .error_handler import ConversionError, ErrorCategory, ErrorHandler
from .file_validator import FileValidator
from .gif_processing.gif_generator import GifGenerator
from .models import ConversionRequest, ConversionResult, SourceFile, SourceKind, SourceOrigin
from .request_validator import RequestValidator, ValidationResult
from .retention_sweeper import RetentionScheduler
from .source_acquirer import SourceAcquirer
from .tool_runner import ToolRunner

logger = logging.getLogger(__name__)


class ConversionPipeline:
    """Turns a ConversionRequest into a finished GIF artifact"""

    def __init__(self, config_manager: ConfigManager, runner: Optional[ToolRunner] = None,
                 clock: Optional[Callable[[], float]] = None,
                 shutdown_checker: Optional[Callable[[], bool]] = None,
                 retention_scheduler: Optional[RetentionScheduler] = None):
        self.config = config_manager
        self.runner = runner or ToolRunner(
            shutdown_checker=shutdown_checker,
            max_output_chars=int(config_manager.get('pipeline.tools.max_output_chars', 65536))
        )
        self.clock = clock or time.time
        self.validator = RequestValidator(config_manager)
        self.acquirer = SourceAcquirer(config_manager, runner=self.runner)
        self.prober = FileValidator(config_manager, runner=self.runner)
        self.generator = GifGenerator(config_manager, runner=self.runner)
        self.store = ArtifactStore(
            config_manager.resolve_storage_dir('output_dir', 'public/gifs'),
            config_manager.get('pipeline.public_prefix', '/gifs')
        )
        self.max_source_duration = float(config_manager.get('pipeline.limits.max_source_duration_seconds', 600))
        self.error_handler = ErrorHandler()
        self.retention_scheduler = retention_scheduler

    def convert(self, request: ConversionRequest,
                cancel_checker: Optional[Callable[[], bool]] = None,
                progress_callback: Optional[Callable[[float], None]] = None) -> ConversionResult:
        """
        Run one request through every stage.

        Raises:
            ConversionError: for every expected failure, tagged with its category
            OSError: for unexpected storage failures
        """
        validation = self._validate(request)
        if not validation.valid:
            raise ConversionError(ErrorCategory.INVALID_REQUEST, validation.message(), details=validation.errors)

        if request.source_kind == SourceKind.REMOTE:
            source = self.acquirer.fetch_remote(validation.identifier, cancel_checker=cancel_checker)
            return self._convert_source(source, validation.identifier, request.source_kind, validation,
                                        cancel_checker, progress_callback)

        with self.acquirer.transient_upload(validation.data, request.file_name) as source:
            return self._convert_source(source, request.file_name, request.source_kind, validation,
                                        cancel_checker, progress_callback)

    def _validate(self, request: ConversionRequest) -> ValidationResult:
        if request.source_kind == SourceKind.REMOTE:
            return self.validator.validate_remote(request.identifier, request.start_time, request.duration)
        return self.validator.validate_upload(request.file_bytes, request.file_name,
                                              request.declared_mime_type, request.start_time, request.duration)

    def _convert_source(self, source: SourceFile, source_name: str, source_kind: SourceKind,
                        validation: ValidationResult,
                        cancel_checker: Optional[Callable[[], bool]],
                        progress_callback: Optional[Callable[[float], None]]) -> ConversionResult:
        start_time = validation.start_time
        duration = validation.duration

        probe = self.prober.probe(str(source.path), max_duration=self.max_source_duration,
                                  cancel_checker=cancel_checker)
        if not probe.valid:
            if source.origin == SourceOrigin.REMOTE_CACHE:
                self.acquirer.evict_remote(source_name)
            raise ConversionError(ErrorCategory.SOURCE_INVALID, f"Invalid video file: {probe.error}")
        source.probed_duration = probe.duration
        source.probed_is_video = True

        if start_time + duration > probe.duration:
            raise ConversionError(
                ErrorCategory.INVALID_REQUEST,
                f"Requested clip ends at {start_time + duration:g}s but the video is only {probe.duration:.1f}s long",
                details={'startTime': f"Start time plus duration must not exceed {probe.duration:.1f} seconds"}
            )

        output_path = self.store.allocate(source_kind, source_name, start_time, duration,
                                          int(self.clock() * 1000))
        try:
            outcome = self.generator.create_gif(str(source.path), str(output_path), start_time, duration,
                                                cancel_checker=cancel_checker,
                                                progress_callback=progress_callback)
        except BaseException:
            self.store.discard(output_path)
            raise

        result = ConversionResult(
            public_path=self.store.public_path(output_path),
            byte_size=outcome.byte_size,
            file_path=output_path,
            source_kind=source_kind,
            tier=outcome.tier,
            frame_count=outcome.frame_count
        )
        logger.info(f"Conversion complete: {result.public_path} ({result.byte_size} bytes, {result.tier} tier)")
        return result

    def handle(self, payload: Dict[str, Any],
               cancel_checker: Optional[Callable[[], bool]] = None,
               progress_callback: Optional[Callable[[float], None]] = None) -> Dict[str, Any]:
        """Boundary entry point: request dictionary in, success or failure dictionary out"""
        context = 'conversion request'
        try:
            if not isinstance(payload, dict):
                raise ConversionError(ErrorCategory.INVALID_REQUEST, 'Request must be an object',
                                      details={'request': 'Request must be an object'})
            context = f"{payload.get('sourceKind')} request"
            try:
                request = ConversionRequest.from_dict(payload)
            except ValueError as e:
                raise ConversionError(ErrorCategory.INVALID_REQUEST, str(e), details={'sourceKind': str(e)})
            return self.convert(request, cancel_checker=cancel_checker,
                                progress_callback=progress_callback).to_response()
        except Exception as e:
            return self.error_handler.handle_error(e, context=context).to_response()
        finally:
            if self.retention_scheduler:
                self.retention_scheduler.trigger()

    def request_shutdown(self):
        """Terminate running tools; in-flight requests fail as cancelled"""
        self.runner.request_shutdown()
