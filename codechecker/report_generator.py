"""
Report generation module for PDF, CSV, JSON, and visualization outputs.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use('Agg')
import matplotlib.pyplot as plt

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.platypus import (
    SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle,
    PageBreak, Image
)
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch

from .config import (
    ScanReport, Submission, RiskLevel, RISK_THRESHOLDS,
    classify_risk
)

logger = logging.getLogger(__name__)

RISK_COLORS = {
    RiskLevel.HIGH: colors.HexColor('#F1948A'),
    RiskLevel.MEDIUM: colors.HexColor('#F8C471'),
    RiskLevel.LOW: colors.white,
}


class ReportGenerator:
    """Writes scan results as CSV, JSON, PNG and PDF"""

    def __init__(self, output_dir: str = "./reports", max_pdf_rows: int = 50):
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.max_pdf_rows = max_pdf_rows
        self.font_name = 'Helvetica'

        self.styles = getSampleStyleSheet()
        self._setup_custom_styles()

    def _setup_custom_styles(self):
        """Setup custom paragraph styles"""
        self.styles.add(ParagraphStyle(
            name='CustomTitle',
            parent=self.styles['Heading1'],
            fontSize=18,
            spaceAfter=30,
            alignment=1  # Center
        ))

        self.styles.add(ParagraphStyle(
            name='CustomHeading',
            parent=self.styles['Heading2'],
            fontSize=14,
            spaceAfter=12,
            textColor=colors.HexColor('#2E4053')
        ))

        self.styles.add(ParagraphStyle(
            name='ReportBody',
            parent=self.styles['Normal'],
            fontSize=10,
            spaceAfter=6
        ))

    def generate_all_reports(self, report: ScanReport,
                             submissions: Optional[Sequence[Submission]] = None,
                             prefix: str = "") -> Dict[str, str]:
        """Generate all report formats"""
        if not prefix:
            prefix = f"scan_{report.started_at}"

        csv_path = self.output_dir / f"{prefix}_pairs.csv"
        self.generate_csv_report(report, str(csv_path), submissions)

        json_path = self.output_dir / f"{prefix}_summary.json"
        report.save_json(str(json_path))

        viz_path = self.output_dir / f"{prefix}_visualization.png"
        self.generate_visualization(report, str(viz_path), submissions)

        pdf_path = self.output_dir / f"{prefix}.pdf"
        self.generate_pdf_report(report, str(pdf_path), submissions, image_path=str(viz_path))

        logger.info(f"Reports generated at: {self.output_dir}")
        return {
            'csv': str(csv_path),
            'json': str(json_path),
            'png': str(viz_path),
            'pdf': str(pdf_path)
        }

    def build_dataframe(self, report: ScanReport,
                        submissions: Optional[Sequence[Submission]] = None) -> pd.DataFrame:
        """One row per compared pair"""
        names = _name_lookup(submissions)
        rows = []
        for similarity in report.similarities:
            rows.append({
                'submission1_id': similarity.submission1_id,
                'submission1_name': names.get(similarity.submission1_id, ''),
                'submission2_id': similarity.submission2_id,
                'submission2_name': names.get(similarity.submission2_id, ''),
                'similarity_score': round(similarity.similarity_score, 2),
                'jaccard_score': round(similarity.jaccard_score, 2),
                'lcs_score': round(similarity.lcs_score, 2),
                'risk_level': classify_risk(similarity.similarity_score).value,
                'matched_regions': len(similarity.highlight_data),
            })
        columns = ['submission1_id', 'submission1_name', 'submission2_id', 'submission2_name',
                   'similarity_score', 'jaccard_score', 'lcs_score', 'risk_level', 'matched_regions']
        return pd.DataFrame(rows, columns=columns)

    def generate_csv_report(self, report: ScanReport, output_path: str,
                            submissions: Optional[Sequence[Submission]] = None):
        """Generate CSV of pair scores"""
        df = self.build_dataframe(report, submissions)
        df.to_csv(output_path, index=False, encoding='utf-8')
        logger.info(f"CSV report generated: {output_path} ({len(df)} rows)")

    def similarity_matrix(self, report: ScanReport,
                          submissions: Optional[Sequence[Submission]] = None):
        """Symmetric score matrix; unscored pairs are NaN"""
        if submissions:
            ids = [s.id for s in submissions]
        else:
            ids = sorted({i for s in report.similarities for i in s.pair})
        position = {sid: k for k, sid in enumerate(ids)}

        matrix = np.full((len(ids), len(ids)), np.nan)
        np.fill_diagonal(matrix, 100.0)
        for similarity in report.similarities:
            a = position.get(similarity.submission1_id)
            b = position.get(similarity.submission2_id)
            if a is None or b is None:
                continue
            matrix[a, b] = matrix[b, a] = similarity.similarity_score
        return ids, matrix

    def generate_visualization(self, report: ScanReport, output_path: str,
                               submissions: Optional[Sequence[Submission]] = None):
        """Generate heat map and score distribution"""
        fig, (ax_matrix, ax_hist) = plt.subplots(1, 2, figsize=(15, 6))

        ids, matrix = self.similarity_matrix(report, submissions)
        names = _name_lookup(submissions)
        labels = [names.get(i) or str(i) for i in ids]

        if len(ids):
            image = ax_matrix.imshow(np.ma.masked_invalid(matrix), cmap='RdYlGn_r', vmin=0, vmax=100)
            fig.colorbar(image, ax=ax_matrix, label='Similarity (%)')
            if len(ids) <= 30:
                ax_matrix.set_xticks(range(len(ids)))
                ax_matrix.set_yticks(range(len(ids)))
                ax_matrix.set_xticklabels(labels, rotation=90, fontsize=7)
                ax_matrix.set_yticklabels(labels, fontsize=7)
        ax_matrix.set_title('Pairwise Similarity')

        scores = np.array([s.similarity_score for s in report.similarities])
        if scores.size:
            ax_hist.hist(scores, bins=20, range=(0, 100), edgecolor='black', alpha=0.7, color='skyblue')
            ax_hist.axvline(x=RISK_THRESHOLDS['medium'], color='orange', linestyle='--',
                            label=f"Medium ({RISK_THRESHOLDS['medium']:.0f})")
            ax_hist.axvline(x=RISK_THRESHOLDS['high'], color='red', linestyle='--',
                            label=f"High ({RISK_THRESHOLDS['high']:.0f})")
            ax_hist.legend()
        ax_hist.set_xlabel('Combined Similarity (%)')
        ax_hist.set_ylabel('Pairs')
        ax_hist.set_title('Score Distribution')
        ax_hist.grid(True, alpha=0.3)

        fig.suptitle(f'Plagiarism Scan ({report.mode.value}) | '
                     f'{report.total_submissions} submissions, {len(report.similarities)} pairs',
                     fontsize=14, fontweight='bold')
        fig.tight_layout()
        fig.savefig(output_path, dpi=150, bbox_inches='tight')
        plt.close(fig)

        logger.info(f"Visualization generated: {output_path}")

    def generate_pdf_report(self, report: ScanReport, output_path: str,
                            submissions: Optional[Sequence[Submission]] = None,
                            image_path: Optional[str] = None):
        """Generate PDF summary with ranked pairs"""
        doc = SimpleDocTemplate(
            output_path,
            pagesize=A4,
            rightMargin=0.75*inch,
            leftMargin=0.75*inch,
            topMargin=0.75*inch,
            bottomMargin=0.75*inch
        )

        story = []
        story.append(Paragraph("CODE PLAGIARISM SCAN REPORT", self.styles['CustomTitle']))
        story.append(Spacer(1, 0.25*inch))

        scores = [s.similarity_score for s in report.similarities]
        metadata = [
            ["Scan Mode", report.mode.value],
            ["Status", report.status.value],
            ["Submissions", str(report.total_submissions)],
            ["Pairs Compared", str(report.total_pairs)],
            ["Pairs Reported", str(len(report.similarities))],
            ["Failed Pairs", str(len(report.failures))],
            ["Highest Similarity", f"{max(scores):.2f}%" if scores else "-"],
            ["Mean Similarity", f"{float(np.mean(scores)):.2f}%" if scores else "-"],
            ["Processing Time", f"{report.processing_time:.2f} seconds"],
        ]
        story.append(self._table(metadata, [200, 200]))
        story.append(Spacer(1, 0.25*inch))

        # Risk breakdown
        story.append(Paragraph("RISK BREAKDOWN", self.styles['CustomHeading']))
        breakdown = {level: 0 for level in RiskLevel}
        for score in scores:
            breakdown[classify_risk(score)] += 1
        breakdown_data = [["Risk Level", "Pairs"]]
        breakdown_data.extend([level.value, str(count)] for level, count in breakdown.items())
        story.append(self._table(breakdown_data, [200, 100]))

        # Ranked pairs
        story.append(PageBreak())
        story.append(Paragraph("MOST SIMILAR PAIRS", self.styles['CustomHeading']))
        names = _name_lookup(submissions)
        ranked = sorted(report.similarities, key=lambda s: s.similarity_score, reverse=True)
        ranked = ranked[:self.max_pdf_rows]

        if ranked:
            pair_data = [["Submission 1", "Submission 2", "Combined", "Jaccard", "LCS", "Lines"]]
            row_styles = []
            for row, similarity in enumerate(ranked, start=1):
                pair_data.append([
                    _label(names, similarity.submission1_id),
                    _label(names, similarity.submission2_id),
                    f"{similarity.similarity_score:.1f}",
                    f"{similarity.jaccard_score:.1f}",
                    f"{similarity.lcs_score:.1f}",
                    str(len(similarity.highlight_data))
                ])
                level = classify_risk(similarity.similarity_score)
                row_styles.append(('BACKGROUND', (0, row), (-1, row), RISK_COLORS[level]))
            story.append(self._table(pair_data, [140, 140, 60, 60, 50, 40], row_styles, font_size=8))
        else:
            story.append(Paragraph("No pairs were reported.", self.styles['ReportBody']))

        if report.failures:
            story.append(Spacer(1, 0.25*inch))
            story.append(Paragraph("FAILED COMPARISONS", self.styles['CustomHeading']))
            failure_data = [["Submission 1", "Submission 2", "Error"]]
            for failure in report.failures[:self.max_pdf_rows]:
                failure_data.append([
                    _label(names, failure.submission1_id),
                    _label(names, failure.submission2_id),
                    failure.error[:60]
                ])
            story.append(self._table(failure_data, [120, 120, 250], font_size=8))

        if image_path and Path(image_path).exists():
            story.append(PageBreak())
            story.append(Paragraph("VISUALIZATION", self.styles['CustomHeading']))
            story.append(Image(image_path, width=7*inch, height=2.8*inch))

        doc.build(story)
        logger.info(f"PDF report generated: {output_path}")

    def _table(self, data: List[List[str]], col_widths: List[int],
               extra_styles: Optional[list] = None, font_size: int = 10) -> Table:
        table = Table(data, colWidths=col_widths)
        style = [
            ('BACKGROUND', (0, 0), (-1, 0), colors.lightgrey),
            ('GRID', (0, 0), (-1, -1), 0.5, colors.black),
            ('PADDING', (0, 0), (-1, -1), 4),
            ('FONTSIZE', (0, 0), (-1, -1), font_size),
            ('FONTNAME', (0, 0), (-1, -1), self.font_name),
        ]
        table.setStyle(TableStyle(style + (extra_styles or [])))
        return table


def _name_lookup(submissions: Optional[Sequence[Submission]]) -> Dict[int, str]:
    if not submissions:
        return {}
    return {s.id: s.student_name or s.file_name for s in submissions}


def _label(names: Dict[int, str], submission_id: int) -> str:
    name = names.get(submission_id)
    text = f"#{submission_id} {name}" if name else f"#{submission_id}"
    return text[:28]
