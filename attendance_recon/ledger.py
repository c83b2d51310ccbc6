"""
Reconciliation ledger.

One ledger holds every review queue, keyed by ``Category``. Records are
partitioned once at initialization, then accepted, overridden and
commented on inside their queue. Each mutation replaces the queue's list
wholesale, so a failed bulk operation leaves the previous list in place.
"""
import logging
from datetime import date, datetime

from .autosave import CommitScheduler
from .config import ADMIN_ROLES, NOT_FOUND
from .exceptions import (FinalizeBlockedError, InvalidStatusError, MappingError, NotFinalizedError,
                         PermissionDeniedError, RecordLockedError, RecordNotFoundError)
from .models import ModuleStatus, ReconciliationRecord
from .statuses import (REVIEW_CATEGORIES, SMART_RECONCILE_CATEGORIES, Category,
                       categorize, is_clean, is_valid_option)
from .timeutils import format_date

logger = logging.getLogger(__name__)

OVERLAY_ID_COLUMNS = ('Employee Number', 'Emp No', 'Employee ID')
OVERLAY_DATE_COLUMNS = ('Date',)
OVERLAY_STATUS_COLUMNS = ('Final Status', 'Status', 'Excel Status')
OVERLAY_COMMENT_COLUMNS = ('Comments', 'Comment', 'Remarks')


def can_mutate(role):
    """True for the roles allowed to change reconciliation state."""
    return role in ADMIN_ROLES


def _confirmed(confirm, message):
    if confirm is None:
        return True
    return bool(confirm(message))


def _cell(row, columns):
    for column in columns:
        if column in row and row[column] is not None:
            return row[column]
    return None


def overlay_key(employee_number, day):
    """(employee, date) key for overlay matching: trimmed, case kept."""
    if isinstance(day, (datetime, date)):
        day = format_date(day)
    return str(employee_number or '').strip(), str(day or '').strip()


class ReconciliationLedger:

    def __init__(self, actor='System', role=None, clock=None, on_commit=None,
                 autosave_delay=None):
        self.actor = actor
        self.role = role
        self.clock = clock or datetime.now
        self.is_finalized = False
        self._queues = {category: [] for category in Category}
        self._complete = {category: False for category in Category}
        self.scheduler = None
        if on_commit is not None:
            self.scheduler = CommitScheduler(lambda: on_commit(self.snapshot()), delay=autosave_delay)

    # ------------------------------------------------------------------ state

    def records(self, category):
        return list(self._queues[category])

    def __len__(self):
        return sum(len(queue) for queue in self._queues.values())

    def get(self, record_id, category=None):
        category, record = self._find(record_id, category)
        return record

    def category_of(self, record_id):
        category, _ = self._find(record_id)
        return category

    def module_status(self, category):
        queue = self._queues[category]
        return ModuleStatus(
            name=category.label,
            total=len(queue),
            reconciled=sum(1 for record in queue if record.is_reconciled),
            is_complete=self._complete[category],
        )

    def module_statuses(self):
        """Status per review module; Unclassified is only listed while it holds records."""
        statuses = {category: self.module_status(category) for category in REVIEW_CATEGORIES}
        if self._queues[Category.UNCLASSIFIED]:
            statuses[Category.UNCLASSIFIED] = self.module_status(Category.UNCLASSIFIED)
        return statuses

    def reconciled_records(self):
        result = []
        for category in Category:
            result.extend(record.copy() for record in self._queues[category] if record.is_reconciled)
        return result

    def snapshot(self):
        return {
            'queues': {category.value: [record.copy() for record in queue]
                       for category, queue in self._queues.items()},
            'complete': {category.value: flag for category, flag in self._complete.items()},
            'is_finalized': self.is_finalized,
        }

    # -------------------------------------------------------------- lifecycle

    def initialize(self, attendance, confirm=None):
        """
        Partition attendance records into the category queues, replacing
        whatever the ledger held. Returns record counts per category, or
        None when re-initialization was declined.
        """
        self._check_role()
        if len(self) and not _confirmed(confirm, f"Replace {len(self)} records under review?"):
            return None

        queues = {category: [] for category in Category}
        for att in attendance:
            category = categorize(att.status, att.deviation)
            if category is Category.UNCLASSIFIED:
                logger.warning("Record %s has unrecognised status %r; queued as unclassified",
                               att.record_id, att.status)
            queues[category].append(ReconciliationRecord.from_attendance(att, category))

        self._queues = queues
        self._complete = {category: False for category in Category}
        self.is_finalized = False
        counts = {category: len(queue) for category, queue in queues.items()}
        logger.info("Initialized reconciliation: %s",
                    ', '.join(f"{category.value}={count}" for category, count in counts.items()))
        self._changed()
        return counts

    def clear(self, confirm=None):
        self._check_role()
        if not _confirmed(confirm, f"Clear all {len(self)} records under review?"):
            return False
        self._queues = {category: [] for category in Category}
        self._complete = {category: False for category in Category}
        self.is_finalized = False
        logger.info("Reconciliation ledger cleared")
        self._changed()
        return True

    # ---------------------------------------------------------------- overlay

    def import_overlay(self, category, rows):
        """
        Stage externally reviewed statuses on a queue. Rows are key/value
        mappings carrying employee number, date, a proposed final status and
        an optional comment. Nothing is accepted; unmatched records get
        excel_status 'Not Found'. Returns {'matched': n, 'unmatched': m}.
        """
        self._check_role()
        rows = list(rows)
        if rows and not any(column in rows[0] for column in OVERLAY_ID_COLUMNS):
            raise MappingError("Overlay file has no Employee Number column",
                               {'columns': list(rows[0].keys())})
        if rows and not any(column in rows[0] for column in OVERLAY_DATE_COLUMNS):
            raise MappingError("Overlay file has no Date column",
                               {'columns': list(rows[0].keys())})

        overlay = {}
        for row in rows:
            key = overlay_key(_cell(row, OVERLAY_ID_COLUMNS), _cell(row, OVERLAY_DATE_COLUMNS))
            if key[0]:
                overlay[key] = row

        matched = 0
        unmatched = 0
        updated = []
        for record in self._queues[category]:
            if record.is_reconciled:
                updated.append(record)
                continue
            row = overlay.get(overlay_key(record.employee_number, record.date))
            if row is None:
                unmatched += 1
                updated.append(record.copy(excel_status=NOT_FOUND))
                continue
            matched += 1
            status = str(_cell(row, OVERLAY_STATUS_COLUMNS) or '').strip()
            comment = _cell(row, OVERLAY_COMMENT_COLUMNS)
            updated.append(record.copy(
                excel_status=status,
                final_status=status or record.final_status,
                comments=str(comment).strip() if comment is not None else record.comments,
            ))

        self._queues[category] = updated
        logger.info("Overlay on %s: %d matched, %d not found", category.value, matched, unmatched)
        self._changed()
        return {'matched': matched, 'unmatched': unmatched}

    # ------------------------------------------------------------- accepting

    def accept(self, record_id, category=None):
        self._check_role()
        category, record = self._find(record_id, category)
        if record.is_reconciled:
            return record
        accepted = self._accepted(record, self._timestamp())
        self._replace(category, accepted)
        logger.debug("Accepted %s as %s", record_id, accepted.final_status)
        self._changed()
        return accepted

    def accept_all(self, category, confirm=None):
        """Accept every unreconciled record in one queue; returns the count accepted."""
        self._check_role()
        pending = [record for record in self._queues[category] if not record.is_reconciled]
        if not pending:
            return 0
        if not _confirmed(confirm, f"Accept {len(pending)} records in {category.label}?"):
            return 0

        stamp = self._timestamp()
        self._queues[category] = [record if record.is_reconciled else self._accepted(record, stamp)
                                  for record in self._queues[category]]
        logger.info("Accepted all %d pending records in %s", len(pending), category.value)
        self._changed()
        return len(pending)

    def smart_reconcile(self, confirm=None):
        """
        Accept the clean records (P, WO, H, WOH) of the Present, Off Days and
        Worked Off queues. Absent, Errors, Audit and anything overridden to a
        non-clean status are left for a reviewer.
        """
        self._check_role()
        eligible = {category: [record for record in self._queues[category]
                               if not record.is_reconciled and is_clean(record.final_status)]
                    for category in SMART_RECONCILE_CATEGORIES}
        total = sum(len(records) for records in eligible.values())
        if not total:
            return 0
        if not _confirmed(confirm, f"Smart reconcile will accept {total} clean records. Continue?"):
            return 0

        stamp = self._timestamp()
        queues = dict(self._queues)
        for category, records in eligible.items():
            ids = {record.id for record in records}
            queues[category] = [self._accepted(record, stamp) if record.id in ids else record
                                for record in queues[category]]
        self._queues = queues
        logger.info("Smart reconcile accepted %d records", total)
        self._changed()
        return total

    # --------------------------------------------------------------- editing

    def override_status(self, record_id, status, category=None):
        self._check_role()
        if not is_valid_option(status):
            raise InvalidStatusError(f"'{status}' is not an allowed status",
                                     {'record_id': record_id, 'status': status})
        category, record = self._find(record_id, category)
        self._check_unlocked(record)
        updated = record.copy(final_status=status)
        self._replace(category, updated)
        self._changed()
        return updated

    def edit_comment(self, record_id, text, category=None):
        self._check_role()
        category, record = self._find(record_id, category)
        self._check_unlocked(record)
        updated = record.copy(comments=text or '')
        self._replace(category, updated)
        self._changed()
        return updated

    # ------------------------------------------------------------ completion

    def mark_complete(self, category, confirm=None):
        self._check_role()
        status = self.module_status(category)
        if status.pending and not _confirmed(
                confirm, f"{status.pending} of {status.total} records in {category.label} "
                         f"are not reconciled. Mark the module complete anyway?"):
            return False
        self._complete[category] = True
        logger.info("Module %s marked complete (%d/%d reconciled)",
                    category.value, status.reconciled, status.total)
        self._changed()
        return True

    def incomplete_modules(self):
        return [status.name for status in self.module_statuses().values() if not status.is_complete]

    def finalize(self, confirm=None):
        """
        Lock reconciliation. Raises FinalizeBlockedError while any module is
        incomplete; returns the reconciled records, or None if declined.
        """
        self._check_role()
        incomplete = self.incomplete_modules()
        if incomplete:
            raise FinalizeBlockedError(incomplete)
        if not _confirmed(confirm, "Finalize reconciliation for all modules?"):
            return None
        reconciled = self.reconciled_records()
        self.is_finalized = True
        logger.info("Reconciliation finalized with %d reconciled records", len(reconciled))
        self._changed()
        return reconciled

    def finalized_records(self):
        """Reconciled records for download; only available once finalized."""
        if not self.is_finalized:
            raise NotFinalizedError("Reconciliation is not finalized. Complete all modules and finalize first.",
                                    {'incomplete': self.incomplete_modules()})
        return self.reconciled_records()

    def apply_final_statuses(self, attendance):
        """Copies of the attendance records with reconciled final statuses written back."""
        finals = {record.id: record.final_status for record in self.reconciled_records()}
        return [att.copy(status=finals[att.record_id]) if att.record_id in finals else att
                for att in attendance]

    # -------------------------------------------------------------- internal

    def _find(self, record_id, category=None):
        categories = [category] if category is not None else list(Category)
        for cat in categories:
            for record in self._queues[cat]:
                if record.id == record_id:
                    return cat, record
        raise RecordNotFoundError(f"No record {record_id}",
                                  {'record_id': record_id,
                                   'category': category.value if category else None})

    def _replace(self, category, updated):
        self._queues[category] = [updated if record.id == updated.id else record
                                  for record in self._queues[category]]

    def _accepted(self, record, stamp):
        return record.copy(is_reconciled=True, reconciled_by=self.actor, reconciled_on=stamp)

    def _timestamp(self):
        now = self.clock()
        return f"{format_date(now)} {now:%H:%M:%S}"

    def _check_unlocked(self, record):
        if record.is_reconciled:
            raise RecordLockedError(f"Record {record.id} is already reconciled",
                                    {'record_id': record.id})

    def _check_role(self):
        if self.role is not None and not can_mutate(self.role):
            raise PermissionDeniedError(f"Role '{self.role}' may not change reconciliation state",
                                        {'role': self.role})

    def _changed(self):
        if self.scheduler is not None:
            self.scheduler.mark_dirty()
