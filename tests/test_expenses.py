"""
Tests for ExpenseClient.core.expenses
(create, update and delete with offline fallback, the read path and summaries).

Run:
    python -m unittest tests.test_expenses
"""
from typing import List

from ExpenseClient.core.models import ExpenseFilters, ExpenseRecord, MutationType
from ExpenseClient.signals import signals
from ExpenseClient.status import status
from tests.base import BaseClientTestCase

LUNCH = {'amount': 12.5, 'category': 'Food', 'description': 'Lunch', 'date': '2024-01-01'}


def stale(record_id: str, **fields) -> ExpenseRecord:
    data = dict(id=record_id, amount=1.0, category='Other', description='stale', date='2023-01-01')
    data.update(fields)
    return ExpenseRecord(**data)


class CreateTests(BaseClientTestCase):

    def test_online_create_returns_the_service_record(self):
        record = self.client.create(LUNCH)
        self.assertFalse(record.is_local)
        self.assertTrue(record.id.startswith('srv_'))
        self.assertEqual([r.id for r in self.client.replica.load()], [record.id])
        self.assertEqual(self.client.pending_count(), 0)

    def test_offline_create_is_local_and_queued(self):
        self.go_offline()
        before = self.client.pending_count()
        record = self.client.create({'amount': 12.5, 'category': 'Food', 'date': '2024-01-01'})

        self.assertTrue(record.is_local)
        self.assertTrue(record.id.startswith('local_'))
        self.assertEqual(record.description, 'Food Expense')
        self.assertEqual(self.client.pending_count(), before + 1)

        queued = self.client.queue.peek_all()[-1]
        self.assertEqual(queued.type, MutationType.Create)
        self.assertEqual(queued.ref_id, record.id)
        self.assertEqual(queued.data, record.payload())

        stored = self.client.replica.get(record.id)
        self.assertTrue(stored.is_local)

    def test_failed_post_falls_back_to_local(self):
        self.backend.fail_on.add(('POST', '/expenses'))
        record = self.client.create(LUNCH)
        self.assertTrue(record.is_local)
        self.assertEqual(self.client.pending_count(), 1)
        self.assertTrue(self.client.is_offline())

    def test_malformed_post_answer_falls_back_to_local(self):
        self.backend.malformed_descriptions.add('Lunch')
        record = self.client.create(LUNCH)
        self.assertTrue(record.is_local)
        self.assertEqual(self.client.pending_count(), 1)
        self.assertEqual([r.id for r in self.client.replica.load()], [record.id])

    def test_invalid_input_writes_nothing(self):
        with self.assertRaises(status.ExpenseInvalidException):
            self.client.create({'amount': -1, 'category': 'Food'})
        self.assertEqual(self.client.replica.load(), [])
        self.assertEqual(self.client.pending_count(), 0)
        self.assertEqual(self.backend.calls, [])

    def test_changes_reach_the_signal_hub(self):
        seen: List[list] = []

        def _slot(records: list) -> None:
            seen.append(records)

        signals.expensesChanged.connect(_slot)
        try:
            self.client.create(LUNCH)
        finally:
            signals.expensesChanged.disconnect(_slot)
        self.assertEqual(len(seen), 1)
        self.assertEqual(len(seen[0]), 1)


class DeleteTests(BaseClientTestCase):

    def test_online_delete(self):
        record = self.client.create(LUNCH)
        self.client.delete(record.id)
        self.assertEqual(self.backend.expenses, {})
        self.assertEqual(self.client.replica.load(), [])
        self.assertEqual(self.client.pending_count(), 0)

    def test_offline_delete_is_queued(self):
        record = self.client.create(LUNCH)
        self.go_offline()
        self.client.delete(record.id)

        self.assertIsNone(self.client.replica.get(record.id))
        queued = self.client.queue.peek_all()
        self.assertEqual([(m.type, m.ref_id) for m in queued], [(MutationType.Delete, record.id)])
        self.assertIn(record.id, self.backend.expenses)

    def test_failed_delete_is_queued(self):
        record = self.client.create(LUNCH)
        self.backend.fail_on.add(('DELETE', f'/expenses/{record.id}'))
        self.client.delete(record.id)
        self.assertEqual(self.client.pending_count(), 1)
        self.assertTrue(self.client.is_offline())

    def test_deleting_a_local_record_cancels_its_create(self):
        self.go_offline()
        before = self.client.pending_count()
        record = self.client.create(LUNCH)
        self.assertEqual(self.client.pending_count(), before + 1)

        self.backend.calls.clear()
        self.client.delete(record.id)

        self.assertEqual(self.client.pending_count(), before)
        self.assertEqual(self.client.replica.load(), [])
        self.assertEqual(self.backend.calls, [])

    def test_deleting_a_local_record_online_sends_nothing(self):
        self.go_offline()
        record = self.client.create(LUNCH)
        self.go_online()
        self.backend.calls.clear()
        self.client.delete(record.id)
        self.assertEqual(self.client.pending_count(), 0)
        self.assertEqual(self.backend.calls, [])

    def test_cancel_leaves_other_pending_work(self):
        self.go_offline()
        keep = self.client.create(dict(LUNCH, description='Keep'))
        drop = self.client.create(dict(LUNCH, description='Drop'))
        self.client.delete(drop.id)
        self.assertEqual([m.ref_id for m in self.client.queue.peek_all()], [keep.id])


class UpdateTests(BaseClientTestCase):

    def test_online_update(self):
        record = self.client.create(LUNCH)
        updated = self.client.update(record.id, dict(LUNCH, amount=20))
        self.assertEqual(updated.amount, 20.0)
        self.assertEqual(self.backend.expenses[record.id]['amount'], 20.0)
        self.assertEqual(self.client.replica.get(record.id).amount, 20.0)
        self.assertEqual(self.client.pending_count(), 0)

    def test_offline_update_is_applied_locally_and_queued(self):
        record = self.client.create(LUNCH)
        self.go_offline()
        updated = self.client.update(record.id, dict(LUNCH, description='Dinner'))

        self.assertEqual(updated.description, 'Dinner')
        self.assertEqual(self.client.replica.get(record.id).description, 'Dinner')
        queued = self.client.queue.peek_all()
        self.assertEqual([(m.type, m.ref_id) for m in queued], [(MutationType.Update, record.id)])
        self.assertEqual(self.backend.expenses[record.id]['description'], 'Lunch')

    def test_updating_a_local_record_amends_its_create(self):
        self.go_offline()
        record = self.client.create(LUNCH)
        self.client.update(record.id, dict(LUNCH, amount=99))

        queued = self.client.queue.peek_all()
        self.assertEqual(len(queued), 1)
        self.assertEqual(queued[0].type, MutationType.Create)
        self.assertEqual(queued[0].data['amount'], 99.0)
        self.assertTrue(self.client.replica.get(record.id).is_local)

        self.go_online()
        self.client.sync_pending()
        self.assertEqual([r['amount'] for r in self.backend.expenses.values()], [99.0])


class ReadTests(BaseClientTestCase):

    def test_offline_read_returns_the_replica(self):
        records = [stale('a'), stale('local_1_x', is_local=True), stale('b', category='Food')]
        self.client.replica.save(records)
        self.go_offline()
        self.assertEqual(self.client.get_all(), records)

    def test_offline_read_filters_the_replica(self):
        self.client.replica.save([
            stale('a', category='Food', date='2024-01-10'),
            stale('b', category='Bills', date='2024-01-10'),
            stale('c', category='Food', date='2024-02-10'),
        ])
        self.go_offline()

        by_category = self.client.get_all(ExpenseFilters(category='Food'))
        self.assertEqual([r.id for r in by_category], ['a', 'c'])

        by_range = self.client.filter_expenses(date_from='2024-01-10', date_to='2024-01-31')
        self.assertEqual([r.id for r in by_range], ['a', 'b'])
        self.assertEqual(self.backend.calls, [])

    def test_online_read_replaces_the_replica(self):
        self.client.replica.save([stale('old_1'), stale('old_2'), stale('old_3')])
        for i in range(4):
            self.backend.seed(description=f'Remote {i}')

        records = self.client.get_all()

        self.assertEqual(len(records), 4)
        self.assertEqual([r.id for r in self.client.replica.load()], [r.id for r in records])
        self.assertEqual(self.client.replica.load(), records)

    def test_online_read_syncs_first(self):
        self.go_offline()
        self.client.create(LUNCH)
        self.go_online()

        records = self.client.get_all()

        self.assertEqual(self.client.pending_count(), 0)
        self.assertEqual(len(records), 1)
        self.assertFalse(records[0].is_local)
        calls = [(m, p) for m, p in self.backend.calls if p != '/health']
        self.assertEqual(calls, [('POST', '/expenses'), ('GET', '/expenses')])

    def test_online_read_keeps_records_still_pending(self):
        self.go_offline()
        local = self.client.create(dict(LUNCH, description='Stuck'))
        self.go_online()
        self.backend.fail_descriptions.add('Stuck')
        remote = self.backend.seed()

        records = self.client.get_all()

        self.assertEqual([r.id for r in records], [remote['id'], local.id])
        self.assertEqual(self.client.replica.load(), records)
        self.assertEqual(self.client.pending_count(), 1)

    def test_filtered_online_read_replaces_the_replica(self):
        self.client.replica.save([stale('bills_1', category='Bills'), stale('food_old', category='Food')])
        fresh = self.backend.seed(category='Food')

        records = self.client.filter_expenses(category='Food')

        self.assertEqual([r.id for r in records], [fresh['id']])
        self.assertEqual(self.client.replica.load(), records)

    def test_filtered_online_read_keeps_pending_records_outside_the_filter(self):
        self.go_offline()
        local = self.client.create(dict(LUNCH, category='Bills', description='Stuck'))
        self.go_online()
        self.backend.fail_descriptions.add('Stuck')
        fresh = self.backend.seed(category='Food')

        records = self.client.filter_expenses(category='Food')

        self.assertEqual([r.id for r in records], [fresh['id']])
        self.assertEqual([r.id for r in self.client.replica.load()], [fresh['id'], local.id])
        self.assertEqual(self.client.pending_count(), 1)

    def test_failed_read_falls_back_to_the_replica(self):
        cached = [stale('a')]
        self.client.replica.save(cached)
        self.backend.fail_on.add(('GET', '/expenses'))

        self.assertEqual(self.client.get_all(), cached)
        self.assertTrue(self.client.is_offline())


class SummaryTests(BaseClientTestCase):

    def test_online_summary_uses_service_statistics(self):
        self.backend.seed(category='Food', amount=10.0)
        self.backend.seed(category='Bills', amount=30.0)

        summary = self.client.get_summary()

        self.assertEqual(summary.total, 40.0)
        self.assertEqual(summary.count, 2)
        self.assertEqual(list(summary.by_category), ['Bills', 'Food'])
        self.assertIn('/expenses/summary/statistics', self.backend.paths('GET'))

    def test_offline_summary_is_computed_from_the_replica(self):
        self.client.replica.save([
            stale('a', category='Food', amount=2.25),
            stale('b', category='Food', amount=1.0),
            stale('c', category='Bills', amount=10.0),
        ])
        self.go_offline()

        summary = self.client.get_summary()

        self.assertEqual(summary.total, 13.25)
        self.assertEqual(summary.count, 3)
        self.assertEqual(summary.by_category, {'Bills': 10.0, 'Food': 3.25})

    def test_status_queries(self):
        self.assertIsNone(self.client.last_sync_time())
        self.assertEqual(self.client.pending_count(), 0)
        self.assertFalse(self.client.is_offline())
