from types import SimpleNamespace

from app.services.ppob_records import TransactionStore


class _StubQuery:
    def __init__(self, session):
        self._session = session

    def filter(self, *args, **kwargs):
        self._session.filters.append(args)
        return self

    def update(self, values, synchronize_session=None):
        self._session.updates.append(values)
        return self._session.rowcount

    def first(self):
        return self._session.row


class _StubSession:
    def __init__(self, rowcount, row=None):
        self.rowcount = rowcount
        self.row = row
        self.filters = []
        self.updates = []
        self.commits = 0

    def query(self, *args, **kwargs):
        return _StubQuery(self)

    def commit(self):
        self.commits += 1


def test_transition_claims_row_in_expected_status():
    row = SimpleNamespace(ref_id="PPOB1", status="DEBITED")
    session = _StubSession(rowcount=1, row=row)

    claimed = TransactionStore(session).transition("PPOB1", "INQUIRY", "DEBITED", account_id="ACC-1")

    assert claimed is row
    assert session.updates == [{"status": "DEBITED", "account_id": "ACC-1"}]
    assert "status" in str(session.filters[0][1])
    assert session.commits == 1


def test_transition_returns_none_when_status_moved_on():
    session = _StubSession(rowcount=0)
    assert TransactionStore(session).transition("PPOB1", "INQUIRY", "DEBITED") is None
