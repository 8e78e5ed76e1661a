"""
Resale Photo Pipeline - Master Orchestrator

Runs each product photo through three strictly sequential stages:

1. Mask generation (remote)
2. Background replacement (remote, strategy chosen by configuration)
3. Subject-integrity QA (local), optional

and returns a PipelineResult carrying artifact paths, the forensic log, timing
and a static cost estimate. Batches run in fixed-size chunks, images within a
chunk in parallel.
"""

import json
import time
import uuid
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
from dataclasses import dataclass, field
from concurrent.futures import ThreadPoolExecutor

from .artifacts import ArtifactStore
from .config import PipelineConfig, load_pipeline_config
from .inpainting import BackgroundReplacer, MaskGenerator, MaskResult, ReplaceResult, create_background_replacer
from .quality import ForensicLog, QAValidator, UpstreamTimings, skipped_forensic_log
from .utils import ArtifactWriteError, base_name, elapsed_ms, sniff_extension, utc_iso_now

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@dataclass
class PipelineInput:
    """One image submitted to the pipeline."""
    image_bytes: bytes
    image_name: str = "uploaded_image.jpg"

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> 'PipelineInput':
        path = Path(path)
        return cls(image_bytes=path.read_bytes(), image_name=path.name)


@dataclass
class ProcessOptions:
    skip_qa: bool = False


@dataclass
class PipelineResult:
    """Terminal value of one image's run."""
    success: bool
    image_id: str
    original_path: str
    edited_path: str = ""
    mask_path: str = ""
    forensic_path: str = ""
    forensic_log: Optional[ForensicLog] = None
    total_time_ms: int = 0
    cost_estimate: float = 0.0
    error: Optional[str] = None
    stage_timings: Dict[str, int] = field(default_factory=dict)

    @property
    def qa_status(self) -> Optional[str]:
        return self.forensic_log.qa_output.qa_status if self.forensic_log else None

    @property
    def vinted_safe(self) -> bool:
        return bool(self.forensic_log and self.forensic_log.vinted_safe)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "image_id": self.image_id,
            "original_path": self.original_path,
            "edited_path": self.edited_path,
            "mask_path": self.mask_path,
            "forensic_path": self.forensic_path,
            "forensic_log": self.forensic_log.to_dict() if self.forensic_log else None,
            "total_time_ms": self.total_time_ms,
            "cost_estimate": self.cost_estimate,
            "error": self.error,
            "stage_timings": dict(self.stage_timings),
        }


def chunked(items: Sequence, size: int) -> List[Sequence]:
    """Split items into consecutive chunks of at most ``size``."""
    if size < 1:
        raise ValueError(f"chunk size must be >= 1, got {size}")
    return [items[i:i + size] for i in range(0, len(items), size)]


def build_collaborators(config: PipelineConfig) -> Tuple[MaskGenerator, BackgroundReplacer]:
    """
    Construct the remote collaborators described by ``config``.

    Called once at process start; the returned objects are shared by every
    image the orchestrator processes.
    """
    from .google_client import build_genai_client
    from .masking import GeminiMaskGenerator

    mask_client = build_genai_client(config.google, location=config.google.mask_location)
    mask_generator = GeminiMaskGenerator(mask_client, config.google, config.qa)

    edit_client = None
    if config.replacer != "comfyui":
        edit_client = build_genai_client(config.google)
    replacer = create_background_replacer(config, edit_client)

    return mask_generator, replacer


class PipelineOrchestrator:
    """
    Master orchestrator for the resale photo pipeline.

    Coordinates:
    - Mask generation
    - Background replacement
    - Subject-integrity QA and forensic logging
    - Artifact persistence, timing and cost accounting
    """

    def __init__(
        self,
        config: Optional[Union[PipelineConfig, Dict, str]] = None,
        mask_generator: Optional[MaskGenerator] = None,
        background_replacer: Optional[BackgroundReplacer] = None,
        validator: Optional[QAValidator] = None,
        store: Optional[ArtifactStore] = None
    ):
        """
        Args:
            config: Pipeline configuration (PipelineConfig, dict, or path to YAML)
            mask_generator: Stage 1 collaborator
            background_replacer: Stage 2 collaborator
            validator: Stage 3 validator (built from config.qa when omitted)
            store: Artifact store (rooted at config.output_dir when omitted)
        """
        self.config = load_pipeline_config(config)

        if mask_generator is None or background_replacer is None:
            built_mask, built_replacer = build_collaborators(self.config)
            mask_generator = mask_generator or built_mask
            background_replacer = background_replacer or built_replacer

        self.mask_generator = mask_generator
        self.background_replacer = background_replacer
        self.validator = validator or QAValidator(self.config.qa)
        self.store = store or ArtifactStore(self.config.output_dir)

        logger.info(
            f"Pipeline ready: mask={getattr(self.mask_generator, 'name', 'custom')}, "
            f"replacer={getattr(self.background_replacer, 'name', 'custom')}, "
            f"output={self.store.root}"
        )

    def process_image(
        self,
        pipeline_input: PipelineInput,
        options: Optional[ProcessOptions] = None
    ) -> PipelineResult:
        """
        Run one image through mask generation, background replacement and QA.

        Never raises. ``success`` means the pipeline ran to completion; whether
        the image is safe to publish is ``forensic_log.vinted_safe``.
        """
        options = options or ProcessOptions(skip_qa=self.config.skip_qa)
        image_id = str(uuid.uuid4())
        tag = image_id[:8]
        start = time.perf_counter()
        timestamp_start = utc_iso_now()
        base = base_name(pipeline_input.image_name)
        costs = self.config.costs
        context = {"image_id": image_id, "image_name": pipeline_input.image_name}

        cost = 0.0
        timings: Dict[str, int] = {}
        mask_path = ""

        def failed(message: str) -> PipelineResult:
            logger.error(f"[{tag}] Pipeline failed: {message}")
            return PipelineResult(
                success=False,
                image_id=image_id,
                original_path=pipeline_input.image_name,
                mask_path=mask_path,
                total_time_ms=elapsed_ms(start),
                cost_estimate=round(cost, 4),
                error=message,
                stage_timings=timings,
            )

        try:
            # ===== Stage 1: mask generation =====
            logger.info(f"[{tag}] Stage 1: generating mask for {pipeline_input.image_name}")
            mask_result = self._generate_mask(pipeline_input.image_bytes, context)
            timings["mask"] = mask_result.timing_ms

            if not mask_result.success or not mask_result.mask_bytes:
                return failed(f"Mask generation failed: {mask_result.error or 'empty mask returned'}")

            cost += costs.mask_generation
            mask_path = self._persist(self.store.mask_path(base, image_id), mask_result.mask_bytes, tag)
            logger.info(f"[{tag}] Stage 1: mask ready ({mask_result.timing_ms}ms)")

            # ===== Stage 2: background replacement =====
            logger.info(f"[{tag}] Stage 2: replacing background")
            replace_result = self._replace_background(pipeline_input.image_bytes, mask_result.mask_bytes, context)
            timings["inpaint"] = replace_result.timing_ms

            if not replace_result.success or not replace_result.edited_bytes:
                return failed(f"Background replacement failed: {replace_result.error or 'empty image returned'}")

            cost += costs.background_replacement
            edited_ext = sniff_extension(replace_result.edited_bytes, self.config.edited_format)
            edited_path = self._persist(
                self.store.edited_path(base, image_id, edited_ext), replace_result.edited_bytes, tag
            )
            logger.info(f"[{tag}] Stage 2: edited image ready ({replace_result.timing_ms}ms)")

            # ===== Stage 3: QA validation =====
            forensic_path = ""
            if options.skip_qa:
                logger.info(f"[{tag}] Stage 3: QA skipped on request")
                forensic_log = skipped_forensic_log(
                    image_id=image_id,
                    timestamp_start=timestamp_start,
                    timestamp_end=utc_iso_now(),
                    mask_time_ms=mask_result.timing_ms,
                    inpaint_time_ms=replace_result.timing_ms,
                    model=replace_result.model,
                    smart_prompt=replace_result.prompt_used,
                )
            else:
                # Compare at the original framing, before any canvas extension
                logger.info(f"[{tag}] Stage 3: validating subject integrity")
                qa_start = time.perf_counter()
                outcome = self.validator.validate(
                    pipeline_input.image_bytes,
                    replace_result.comparison_bytes,
                    mask_result.mask_bytes,
                    image_id,
                    UpstreamTimings(
                        mask_time_ms=mask_result.timing_ms,
                        inpaint_time_ms=replace_result.timing_ms,
                        smart_prompt=replace_result.prompt_used,
                        model=replace_result.model,
                    ),
                )
                timings["qa"] = elapsed_ms(qa_start)
                cost += costs.qa_validation
                forensic_log = outcome.forensic_log
                forensic_path = self._persist(
                    self.store.forensic_path(base, image_id), forensic_log.to_json().encode("utf-8"), tag
                )
                logger.info(
                    f"[{tag}] Stage 3: QA {outcome.qa_status.upper()} "
                    f"(SSIM {outcome.ssim_score:.3f}, delta {outcome.pixel_delta_percent}%)"
                )

            total_time = elapsed_ms(start)
            logger.info(f"[{tag}] Pipeline complete in {total_time}ms, est. cost ${cost:.2f}")

            return PipelineResult(
                success=True,
                image_id=image_id,
                original_path=pipeline_input.image_name,
                edited_path=edited_path,
                mask_path=mask_path,
                forensic_path=forensic_path,
                forensic_log=forensic_log,
                total_time_ms=total_time,
                cost_estimate=round(cost, 4),
                stage_timings=timings,
            )

        except Exception as e:
            logger.exception(f"[{tag}] Unexpected pipeline error")
            return failed(str(e) or e.__class__.__name__)

    def _generate_mask(self, image_bytes: bytes, context: Dict) -> MaskResult:
        start = time.perf_counter()
        try:
            return self.mask_generator.generate(image_bytes, context)
        except Exception as e:
            return MaskResult.failure(str(e) or e.__class__.__name__, elapsed_ms(start))

    def _replace_background(self, image_bytes: bytes, mask_bytes: bytes, context: Dict) -> ReplaceResult:
        start = time.perf_counter()
        try:
            return self.background_replacer.replace(image_bytes, mask_bytes, context)
        except Exception as e:
            return ReplaceResult.failure(str(e) or e.__class__.__name__, elapsed_ms(start))

    def _persist(self, path: Path, data: bytes, tag: str) -> str:
        """Best-effort artifact write; returns "" when the file could not be written."""
        try:
            return str(self.store.write_bytes(path, data))
        except ArtifactWriteError as e:
            logger.warning(f"[{tag}] {e}")
            return ""

    def process_batch(
        self,
        inputs: Sequence[PipelineInput],
        concurrency: Optional[int] = None,
        options: Optional[ProcessOptions] = None,
        progress_callback=None
    ) -> List[PipelineResult]:
        """
        Process images in chunks of ``concurrency``.

        Images within a chunk run in parallel; the next chunk starts only after
        every image of the current one has resolved. Results keep input order.

        Args:
            inputs: Images to process
            concurrency: Chunk size (config.concurrency when None)
            options: Per-image options
            progress_callback: Optional callback(done, total, chunk_results)
        """
        concurrency = concurrency or self.config.concurrency
        results: List[PipelineResult] = []
        total = len(inputs)
        done = 0

        for chunk in chunked(list(inputs), concurrency):
            with ThreadPoolExecutor(max_workers=len(chunk)) as executor:
                futures = [executor.submit(self.process_image, item, options) for item in chunk]
                chunk_results = [future.result() for future in futures]

            results.extend(chunk_results)
            done += len(chunk)
            logger.info(f"Processed {done}/{total} images")

            if progress_callback:
                progress_callback(done, total, chunk_results)

        return results


def summarize_results(results: Sequence[PipelineResult]) -> Dict[str, Any]:
    """Aggregate counts, cost and timing for a batch."""
    succeeded = [r for r in results if r.success]
    statuses = [r.qa_status for r in succeeded]

    summary = {
        "total": len(results),
        "succeeded": len(succeeded),
        "failed": len(results) - len(succeeded),
        "qa_pass": statuses.count("pass"),
        "qa_fail": statuses.count("fail"),
        "qa_skipped": statuses.count("skipped"),
        "vinted_safe": sum(1 for r in succeeded if r.vinted_safe),
        "total_cost": round(sum(r.cost_estimate for r in results), 4),
        "mean_time_ms": (sum(r.total_time_ms for r in results) / len(results)) if results else 0.0,
        "errors": {r.original_path: r.error for r in results if not r.success},
    }
    return summary


def print_summary(summary: Dict[str, Any]):
    """Print batch summary."""
    print("\n" + "=" * 60)
    print("PIPELINE SUMMARY")
    print("=" * 60)
    print(f"Images:           {summary['total']}")
    print(f"Completed:        {summary['succeeded']}")
    print(f"Failed:           {summary['failed']}")
    print(f"QA pass/fail/skip: {summary['qa_pass']}/{summary['qa_fail']}/{summary['qa_skipped']}")
    print(f"Vinted safe:      {summary['vinted_safe']}")
    print(f"Estimated cost:   ${summary['total_cost']:.2f}")
    print(f"Mean time:        {summary['mean_time_ms']:.0f}ms")

    for name, error in summary["errors"].items():
        print(f"  {name}: {error}")

    print("=" * 60 + "\n")


def main(argv: Optional[Sequence[str]] = None) -> int:
    import argparse

    parser = argparse.ArgumentParser(description='Resale photo background replacement with forensic QA')
    parser.add_argument('images', nargs='+', help='Product photos to process')
    parser.add_argument('--config', '-c', help='Path to config YAML')
    parser.add_argument('--output', '-o', help='Output directory')
    parser.add_argument('--concurrency', '-n', type=int, help='Images processed in parallel')
    parser.add_argument('--replacer', '-r', help='Background replacement strategy')
    parser.add_argument('--skip-qa', action='store_true', help='Skip subject-integrity validation')

    args = parser.parse_args(argv)

    config = load_pipeline_config(args.config)
    overrides = {}
    if args.output:
        overrides["output_dir"] = args.output
    if args.concurrency:
        overrides["concurrency"] = args.concurrency
    if args.replacer:
        overrides["replacer"] = args.replacer
    if args.skip_qa:
        overrides["skip_qa"] = True
    if overrides:
        config = PipelineConfig.from_dict({**config.to_dict(), **overrides})

    inputs = [PipelineInput.from_path(p) for p in args.images]

    pipeline = PipelineOrchestrator(config)
    results = pipeline.process_batch(inputs)

    summary = summarize_results(results)
    summary["results"] = [r.to_dict() for r in results]
    summary_path = pipeline.store.root / "batch_summary.json"
    with open(summary_path, 'w') as f:
        json.dump(summary, f, indent=2, default=str)

    print_summary(summary)
    logger.info(f"Summary written to {summary_path}")

    return 0 if summary["failed"] == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
