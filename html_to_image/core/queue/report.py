"""
Batch Report
============

Aggregates job results into a summary and formats it for display.
"""

from typing import Iterable

from html_to_image.models.schemas import BatchSummary, JobResult


class ReportAggregator:
    """Pure aggregation of batch outcomes."""

    @staticmethod
    def summarize(results: Iterable[JobResult]) -> BatchSummary:
        summary = BatchSummary()

        for result in results:
            if result.success and result.output_path is not None:
                summary.converted.append((result.input_path, result.output_path))
            else:
                summary.failures.append((result.input_path, result.error or "Unknown error"))

        summary.successful = len(summary.converted)
        summary.failed = len(summary.failures)
        summary.total = summary.successful + summary.failed
        summary.success_rate = (
            summary.successful / summary.total * 100 if summary.total else 0.0
        )
        return summary

    @staticmethod
    def format_report(summary: BatchSummary) -> str:
        """
        Render a summary as plain text.

        Args:
            summary: Batch summary

        Returns:
            Multi-line report listing converted files and failures
        """
        lines = [
            "Conversion report",
            "=================",
            f"Successful: {summary.successful}",
            f"Failed: {summary.failed}",
            f"Success rate: {summary.success_rate:.1f}%",
        ]

        if summary.converted:
            lines.append("")
            lines.append("Converted files:")
            lines.extend(f"  {source.name} -> {output}" for source, output in summary.converted)

        if summary.failures:
            lines.append("")
            lines.append("Failures:")
            lines.extend(f"  {source.name}: {error}" for source, error in summary.failures)

        return "\n".join(lines)
