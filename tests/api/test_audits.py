"""
API tests for the audit endpoints.

These test the HTTP layer: status codes, response format
and error handling. Records are written through a real
session flush first, then read back over HTTP.
"""

import pytest

from domain import Account, AccountStatus, Book, Company, Customer


@pytest.fixture
def book(auditor, db_session):
    auditor.audit(Book, "create", "update")
    book = Book(title="A", isbn="111")
    db_session.add(book)
    db_session.commit()
    book.author = "Jeff"
    db_session.commit()
    return book


class TestListAudits:

    def test_lists_records_in_version_order(self, client, book):
        response = client.get(f"/audits/Book/{book.id}")
        assert response.status_code == 200

        data = response.json()
        assert [r["version"] for r in data] == [1, 2]
        assert [r["action"] for r in data] == ["create", "update"]
        assert data[1]["changes"]["author"] == {"before": None, "after": "Jeff"}

    def test_unknown_entity_has_no_records(self, client):
        response = client.get("/audits/Book/999")
        assert response.status_code == 200
        assert response.json() == []


class TestSnapshot:

    def test_latest(self, client, book):
        response = client.get(f"/audits/Book/{book.id}/snapshot")
        assert response.status_code == 200

        data = response.json()
        assert data["version"] == 2
        assert data["attributes"] == {"title": "A", "isbn": "111", "author": "Jeff"}

    def test_at_version(self, client, book):
        response = client.get(f"/audits/Book/{book.id}/snapshot?version=1")
        assert response.json()["attributes"] == {"title": "A", "isbn": "111"}

    def test_at_timestamp(self, client, book):
        # the fake clock stamps the first record at 2024-01-01 12:00:00
        response = client.get(
            f"/audits/Book/{book.id}/snapshot", params={"at": "2024-01-01T12:00:00"}
        )
        data = response.json()
        assert data["version"] == 1
        assert data["attributes"] == {"title": "A", "isbn": "111"}

    def test_at_and_version_together_rejected(self, client, book):
        response = client.get(
            f"/audits/Book/{book.id}/snapshot",
            params={"at": "2024-01-01T12:00:00", "version": 1},
        )
        assert response.status_code == 400

    def test_unaudited_entity_returns_404(self, client):
        response = client.get("/audits/Book/999/snapshot")
        assert response.status_code == 404

    def test_version_must_be_positive(self, client, book):
        response = client.get(f"/audits/Book/{book.id}/snapshot?version=0")
        assert response.status_code == 422


def test_owner_audits(client, auditor, db_session):
    auditor.audit(Account, "create", on=("customer", "company"))
    company = Company(name="Acme")
    for email in ("a@test.com", "b@test.com"):
        customer = Customer(
            first_name="Jane", last_name="Doe", email=email, company=company,
        )
        db_session.add(Account(customer=customer, status=AccountStatus.ACTIVE))
    db_session.commit()

    response = client.get(f"/owners/Company/{company.id}/audits")
    assert response.status_code == 200

    data = response.json()
    assert len(data) == 2
    assert {r["auditable_type"] for r in data} == {"Account"}
    assert {r["owner_id"] for r in data} == {str(company.id)}
