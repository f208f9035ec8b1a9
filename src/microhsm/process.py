"""The build pipeline.

Runs the stages in a fixed order on one script:
preprocess, bundle, transform, minify (or pretty print), postprocess.
Nothing is shared between builds and nothing is read from or written to
disk; imported modules come from the resolver in the build options.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import structlog

from .billing import CompressionStats, compression_stats
from .bundle import Bundler
from .codegen import generate
from .errors import Warning
from .minify import insert_after_body_start, minify
from .options import BuildOptions, Seclevel
from .postprocess import postprocess
from .preprocess import preprocess
from .transform import transform

logger = structlog.get_logger(__name__)


@dataclass
class ProcessResult:
    """A compiled script and what the build learned about it."""

    script: str
    warnings: List[Warning] = field(default_factory=list)
    seclevel: Seclevel = Seclevel.FULLSEC
    stats: Optional[CompressionStats] = None


def process_script(code: str, **options) -> ProcessResult:
    """Compile script source into a host script.

    Keyword arguments are those of BuildOptions.
    """
    build = BuildOptions(**options)
    uid = build.unique_id
    log = logger.bind(unique_id=uid, file_path=build.file_path)
    warnings: List[Warning] = []

    pre = preprocess(code, uid)
    warnings.extend(pre.warnings)
    log.debug("pipeline.stage_complete", stage="preprocess", seclevel=pre.seclevel)

    bundler = Bundler(uid, build.resolve_module)
    program = bundler.bundle(pre.program, build.file_path)
    warnings.extend(bundler.warnings)
    log.debug("pipeline.stage_complete", stage="bundle", modules=len(bundler.order))

    stated = build.seclevel if build.seclevel is not None else pre.seclevel
    lowered = transform(program, code, uid, build.script_user, build.script_name, stated)
    warnings.extend(lowered.warnings)
    log.debug("pipeline.stage_complete", stage="transform", seclevel=lowered.seclevel.name)

    if build.minify:
        text = minify(lowered.program, uid, lowered.seclevel, build.mangle_names,
                      build.force_quine_cheats, pre.autocomplete)
    else:
        text = generate(lowered.program)
        if pre.autocomplete:
            text = insert_after_body_start(text, f"\n  //{pre.autocomplete}")
    log.debug("pipeline.stage_complete", stage="minify" if build.minify else "print", length=len(text))

    script = postprocess(text, uid, lowered.seclevel)
    stats = compression_stats(code, script)
    log.debug("pipeline.stage_complete", stage="postprocess", billed=stats.output_length, ratio=stats.ratio)
    return ProcessResult(script, warnings, lowered.seclevel, stats)
