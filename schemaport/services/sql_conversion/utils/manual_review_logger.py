"""
Manual Review Logger - collects schema objects that were converted with a caveat.

Items are keyed by the legacy object they concern: a table (``tbl_orders``),
a column (``tbl_orders.status``) or a relationship edge (``tbl_orders -> tbl_product``).
The collected items are written once per run to
``manual_review_required_<timestamp>.json`` next to the converted SQL.
"""
import os
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional

from schemaport.utils.file_utils import write_json_file

# Issue types raised by the converter, with their default severity and the
# action a reviewer is expected to take.
MANUAL_REVIEW_PATTERNS = {
    'ON_UPDATE_clause': (
        'WARNING',
        'PostgreSQL has no ON UPDATE column clause; add a BEFORE UPDATE trigger or set the value in the application',
    ),
    'Zero_date_default': (
        'WARNING',
        'Zero dates are invalid in PostgreSQL; confirm CURRENT_TIMESTAMP is an acceptable default',
    ),
    'Expression_default': (
        'WARNING',
        'Check that the default expression exists with the same meaning in PostgreSQL',
    ),
    'Implied_relationship': (
        'WARNING',
        'Confirm the relationship inferred from the column name or remove the generated foreign key',
    ),
    'Ambiguous_relationship': (
        'WARNING',
        'Declare the intended FOREIGN KEY explicitly in the legacy DDL',
    ),
    'Skipped_relationship_edge': (
        'WARNING',
        'The inferred relationship would close a cycle and was not used for table ordering',
    ),
    'Partial_timestamps': (
        'INFO',
        'Table tracks only one of created/updated; add the missing column if the application expects both',
    ),
    'Type_widened': (
        'INFO',
        'UNSIGNED or oversized types were widened to keep the value range',
    ),
    'Set_type': (
        'WARNING',
        'MySQL SET values are stored as plain text without validation; consider a lookup table or an array type',
    ),
}

SEVERITY_LEVELS = {
    'ERROR': 'The generated schema will not behave like the legacy one',
    'WARNING': 'Behaviour differs from the legacy schema or was guessed from naming',
    'INFO': 'Lossless adjustment worth knowing about',
}


def object_type(object_name: str) -> str:
    if '->' in object_name:
        return 'RELATIONSHIP'
    if '.' in object_name:
        return 'COLUMN'
    return 'TABLE'


class ManualReviewLogger:
    """Accumulates review items for one conversion run."""

    def __init__(self, output_dir: str, logger=None):
        self.output_dir = output_dir
        self.logger = logger
        self.review_items: List[Dict[str, Any]] = []
        self.log_file_path: Optional[str] = None

    def log_manual_review_item(self, file_path: str, object_name: str, issue_type: str, message: str,
                               severity: Optional[str] = None, suggested_action: Optional[str] = None):
        default_severity, default_action = MANUAL_REVIEW_PATTERNS.get(issue_type, ('WARNING', None))
        severity = severity or default_severity
        table = object_name.split('->')[0].split('.')[0].strip()

        self.review_items.append({
            'source_file': file_path,
            'object_name': object_name,
            'object_type': object_type(object_name),
            'table': table,
            'issue_type': issue_type,
            'severity': severity,
            'message': message,
            'suggested_action': suggested_action or default_action,
            'status': 'PENDING_REVIEW',
        })

        if self.logger:
            level = {'ERROR': self.logger.error, 'INFO': self.logger.info}.get(severity, self.logger.warning)
            level(f"MANUAL REVIEW [{severity}] {object_name} - {issue_type}: {message}")

    def counts(self, key: str) -> Dict[str, int]:
        """Item counts grouped by *key*, most frequent first."""
        return dict(Counter(item[key] for item in self.review_items).most_common())

    def write_manual_review_log(self) -> Optional[str]:
        """Write the collected items; returns the path, or None when there is nothing to review."""
        if not self.review_items:
            return None

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        path = os.path.join(self.output_dir, f"manual_review_required_{timestamp}.json")
        payload = {
            'conversion_timestamp': timestamp,
            'total_items_requiring_review': len(self.review_items),
            'summary_by_type': self.counts('issue_type'),
            'summary_by_severity': self.counts('severity'),
            'summary_by_table': self.counts('table'),
            'severity_levels': SEVERITY_LEVELS,
            'review_items': self.review_items,
        }
        try:
            self.log_file_path = write_json_file(path, payload)
        except OSError as e:
            if self.logger:
                self.logger.error(f"Error writing manual review log: {e}")
            return None

        if self.logger:
            self.logger.info(f"Manual review log written to: {self.log_file_path} ({len(self.review_items)} items)")
        return self.log_file_path

    def create_summary_report(self) -> str:
        if not self.review_items:
            return "No manual review items found."

        lines = ["MANUAL REVIEW REQUIRED", f"  items: {len(self.review_items)}"]
        lines.extend(f"  {severity}: {count}" for severity, count in self.counts('severity').items())
        lines.extend(f"  {issue}: {count}" for issue, count in self.counts('issue_type').items())
        if self.log_file_path:
            lines.append(f"  details: {self.log_file_path}")
        return "\n".join(lines)
