"""
Integration tests for the HTTP API

Drives the FastAPI app through TestClient against an in-memory lending system
with a fixed clock.
"""

import pytest
from fastapi.testclient import TestClient

from peer_lending.api import create_app


@pytest.fixture
def client(system, config):
    app = create_app(system=system, config=config)
    with TestClient(app) as client:
        yield client


def _create_loan(client, name="Asha", **terms):
    loan_terms = {
        "principal_amount": "100000",
        "interest_percentage": "2",
        "interest_due_day": 15,
        "loan_start_date": "2024-01-15",
    }
    loan_terms.update(terms)
    response = client.post("/loans", json={
        "borrower": {"name": name, "phone": "555-0100", "relationship_type": "friend"},
        "loan": loan_terms
    })
    assert response.status_code == 201, response.text
    return response.json()["loan"]


class TestServiceEndpoints:
    """Test health, info and audit endpoints"""

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root(self, client):
        data = client.get("/").json()
        assert data["name"] == "Peer Lending API"
        assert data["endpoints"]["loans"] == "/loans"

    def test_audit_integrity(self, client):
        _create_loan(client)
        data = client.get("/audit/integrity").json()
        assert data["valid"] is True
        assert data["total_events"] == 3


class TestLoanEndpoints:
    """Test loan creation, listing, detail, edits and deletion"""

    def test_create_loan(self, client):
        loan = _create_loan(client)

        assert loan["principal_amount"] == "100000"
        assert loan["monthly_interest_amount"] == "2000.00"
        assert loan["interest_due_day"] == 15
        assert loan["loan_start_date"] == "2024-01-15"
        assert loan["status"] == "active"

    def test_create_for_existing_borrower(self, client):
        borrower = client.post("/borrowers", json={"name": "Meera"}).json()["borrower"]

        response = client.post("/loans", json={
            "borrower_id": borrower["id"],
            "loan": {
                "principal_amount": "5000",
                "interest_percentage": "1",
                "interest_due_day": 1,
                "loan_start_date": "2024-01-01"
            }
        })

        assert response.status_code == 201
        assert response.json()["loan"]["borrower_id"] == borrower["id"]

    @pytest.mark.parametrize("terms, message", [
        ({"interest_due_day": 31}, "Interest due day must be between 1 and 30"),
        ({"principal_amount": "0"}, "Principal amount must be greater than 0"),
        ({"loan_start_date": "2024-13-01"}, "Loan start date must be a valid YYYY-MM-DD"),
    ])
    def test_create_validation_errors(self, client, terms, message):
        loan_terms = {
            "principal_amount": "100",
            "interest_percentage": "2",
            "interest_due_day": 15,
            "loan_start_date": "2024-01-15",
        }
        loan_terms.update(terms)

        response = client.post("/loans", json={"borrower": {"name": "Asha"}, "loan": loan_terms})

        assert response.status_code == 400
        assert response.json()["detail"] == message

    def test_oversized_principal_is_400(self, client):
        response = client.post("/loans", json={"borrower": {"name": "Asha"}, "loan": {
            "principal_amount": "1e30", "interest_percentage": "2",
            "interest_due_day": 15, "loan_start_date": "2024-01-15"
        }})

        assert response.status_code == 400
        assert response.json()["detail"] == "Principal amount must not exceed 1000000000000"
        assert client.get("/borrowers").json()["count"] == 0

    def test_create_without_borrower(self, client):
        response = client.post("/loans", json={"loan": {
            "principal_amount": "100", "interest_percentage": "2",
            "interest_due_day": 15, "loan_start_date": "2024-01-15"
        }})
        assert response.status_code == 400
        assert response.json()["detail"] == "Borrower name is required"

    def test_list_loans_with_status(self, client):
        loan = _create_loan(client)

        data = client.get("/loans", params={"as_of": "2024-02-16"}).json()

        assert data["count"] == 1
        row = data["loans"][0]
        assert row["id"] == loan["id"]
        assert row["borrower_name"] == "Asha"
        assert row["next_due_date"] == "2024-02-15"
        assert row["next_amount"] == "2000.00"
        assert row["payment_status"] == "overdue"
        assert row["outstanding_principal"] == "100000"

    def test_bad_as_of(self, client):
        response = client.get("/loans", params={"as_of": "yesterday"})
        assert response.status_code == 400

    def test_compact_as_of_is_rejected(self, client):
        response = client.get("/loans", params={"as_of": "20240215"})
        assert response.status_code == 400
        assert response.json()["detail"] == "As-of date must be a valid YYYY-MM-DD"

    def test_loan_detail(self, client):
        loan = _create_loan(client)

        data = client.get(f"/loans/{loan['id']}").json()

        assert data["borrower"]["name"] == "Asha"
        assert data["payment_status"] == "due"
        assert data["total_interest_collected"] == "0"
        assert [c["month_year"] for c in data["interest_cycles"]] == ["2024-02"]
        assert data["principal_payments"] == []

    def test_unknown_loan_is_404(self, client):
        response = client.get("/loans/nope")
        assert response.status_code == 404
        assert response.json()["detail"] == "Loan nope not found"

    def test_update_loan_terms_and_borrower(self, client):
        loan = _create_loan(client)

        response = client.put(f"/loans/{loan['id']}", json={
            "borrower": {"phone": "555-0111"},
            "loan": {"interest_percentage": "3", "interest_due_day": 20}
        })

        assert response.status_code == 200
        updated = response.json()["loan"]
        assert updated["monthly_interest_amount"] == "3000.00"
        assert updated["interest_due_day"] == 20

        detail = client.get(f"/loans/{loan['id']}").json()
        assert detail["borrower"]["phone"] == "555-0111"
        assert detail["borrower"]["name"] == "Asha"
        assert detail["interest_cycles"][0]["due_date"] == "2024-02-20"
        assert detail["interest_cycles"][0]["amount"] == "3000.00"

    def test_close_loan(self, client):
        loan = _create_loan(client)

        response = client.put(f"/loans/{loan['id']}", json={"loan": {"status": "closed"}})

        assert response.json()["loan"]["status"] == "closed"
        row = client.get("/loans").json()["loans"][0]
        assert row["payment_status"] == "paid"
        assert row["next_due_date"] is None

    def test_delete_loan(self, client):
        loan = _create_loan(client)

        response = client.delete(f"/loans/{loan['id']}")

        assert response.status_code == 200
        assert client.get(f"/loans/{loan['id']}").status_code == 404
        assert client.get("/borrowers").json()["count"] == 0


class TestCollectionEndpoint:
    """Test POST /loans/{id}/collect-interest"""

    def test_collect_without_body(self, client, clock):
        loan = _create_loan(client)
        clock.set(2024, 2, 20)

        response = client.post(f"/loans/{loan['id']}/collect-interest")

        assert response.status_code == 200
        data = response.json()
        assert data["loan_id"] == loan["id"]
        assert data["synthesized"] is False
        assert data["cycle"]["month_year"] == "2024-02"
        assert data["cycle"]["status"] == "paid"
        assert data["next_cycle"] == {"month_year": "2024-03", "due_date": "2024-03-15", "created": True}

    def test_collect_with_as_of_and_paid_at(self, client, clock):
        loan = _create_loan(client)
        clock.set(2024, 2, 20)

        response = client.post(f"/loans/{loan['id']}/collect-interest", json={
            "as_of": "2024-02-20",
            "paid_at": "2024-02-19T09:30:00+00:00"
        })

        assert response.json()["cycle"]["paid_at"] == "2024-02-19T09:30:00+00:00"

    def test_paid_at_with_trailing_z(self, client, clock):
        loan = _create_loan(client)
        clock.set(2024, 2, 20)

        response = client.post(f"/loans/{loan['id']}/collect-interest", json={
            "paid_at": "2024-02-19T09:30:00.000Z"
        })

        assert response.status_code == 200
        assert response.json()["cycle"]["paid_at"] == "2024-02-19T09:30:00+00:00"

    def test_second_collection_same_month_is_rejected(self, client, clock):
        loan = _create_loan(client)
        clock.set(2024, 2, 20)
        client.post(f"/loans/{loan['id']}/collect-interest")

        response = client.post(f"/loans/{loan['id']}/collect-interest")

        assert response.status_code == 400
        assert response.json()["detail"] == "Interest for 2024-02 has already been collected"

    def test_collect_on_closed_loan(self, client):
        loan = _create_loan(client)
        client.put(f"/loans/{loan['id']}", json={"loan": {"status": "closed"}})

        response = client.post(f"/loans/{loan['id']}/collect-interest")

        assert response.status_code == 400
        assert response.json()["detail"] == "Loan is closed"


class TestPrincipalEndpoints:
    """Test top-ups, repayments and top-up corrections"""

    def test_top_up(self, client):
        loan = _create_loan(client)

        response = client.post(f"/loans/{loan['id']}/top-up", json={
            "amount": "20000", "date": "2024-01-20", "notes": "medical"
        })

        assert response.status_code == 201
        data = response.json()
        assert data["top_up"]["kind"] == "top_up"
        assert data["top_up"]["notes"] == "medical"
        assert data["loan"]["principal_amount"] == "120000"
        assert data["loan"]["monthly_interest_amount"] == "2400.00"
        assert data["principal_current"] == "120000"

    def test_top_up_rejects_zero(self, client):
        loan = _create_loan(client)
        response = client.post(f"/loans/{loan['id']}/top-up", json={"amount": "0"})
        assert response.status_code == 400
        assert response.json()["detail"] == "Top-up amount must be greater than 0"

    def test_repayment(self, client):
        loan = _create_loan(client)

        response = client.post(f"/loans/{loan['id']}/repayments", json={"amount": "30000"})

        assert response.status_code == 201
        data = response.json()
        assert data["repayment"]["kind"] == "repayment"
        assert data["principal_current"] == "70000"
        assert data["loan"]["monthly_interest_amount"] == "1400.00"

    def test_edit_and_delete_top_up(self, client):
        loan = _create_loan(client)
        top_up = client.post(f"/loans/{loan['id']}/top-up", json={"amount": "20000"}).json()["top_up"]

        edited = client.put(f"/principal-payments/{top_up['id']}", json={"amount": "5000"}).json()
        assert edited["payment"]["amount"] == "5000"
        assert edited["loan"]["principal_amount"] == "105000"

        deleted = client.delete(f"/principal-payments/{top_up['id']}").json()
        assert deleted["loan"]["principal_amount"] == "100000"
        assert deleted["loan"]["monthly_interest_amount"] == "2000.00"

    def test_edit_rejects_null_date(self, client):
        loan = _create_loan(client)
        top_up = client.post(f"/loans/{loan['id']}/top-up", json={"amount": "100"}).json()["top_up"]

        response = client.put(f"/principal-payments/{top_up['id']}", json={"date": None})

        assert response.status_code == 400

    def test_repayment_cannot_be_edited(self, client):
        loan = _create_loan(client)
        repayment = client.post(
            f"/loans/{loan['id']}/repayments", json={"amount": "100"}
        ).json()["repayment"]

        response = client.delete(f"/principal-payments/{repayment['id']}")

        assert response.status_code == 400

    def test_unknown_payment_is_404(self, client):
        assert client.delete("/principal-payments/nope").status_code == 404


class TestBorrowerEndpoints:
    """Test borrower CRUD"""

    def test_borrower_crud(self, client):
        created = client.post("/borrowers", json={"name": "Ravi", "phone": "555-0199"})
        assert created.status_code == 201
        borrower_id = created.json()["borrower"]["id"]

        updated = client.put(f"/borrowers/{borrower_id}", json={"notes": "neighbour"}).json()
        assert updated["borrower"]["notes"] == "neighbour"
        assert updated["borrower"]["phone"] == "555-0199"

        fetched = client.get(f"/borrowers/{borrower_id}").json()
        assert fetched["borrower"]["name"] == "Ravi"
        assert fetched["loans"] == []

        deleted = client.delete(f"/borrowers/{borrower_id}").json()
        assert deleted["deleted_loans"] == 0
        assert client.get(f"/borrowers/{borrower_id}").status_code == 404

    def test_create_requires_name(self, client):
        response = client.post("/borrowers", json={"phone": "555-0199"})
        assert response.status_code == 400

    def test_delete_with_loans(self, client):
        loan = _create_loan(client)
        borrower_id = loan["borrower_id"]

        assert client.delete(f"/borrowers/{borrower_id}").status_code == 400

        response = client.delete(f"/borrowers/{borrower_id}", params={"cascade": "true"})
        assert response.status_code == 200
        assert response.json()["deleted_loans"] == 1
        assert client.get("/loans").json()["count"] == 0


class TestReportEndpoints:
    """Test dashboard and report endpoints"""

    def test_dashboard(self, client):
        _create_loan(client)

        data = client.get("/dashboard", params={"as_of": "2024-02-15"}).json()

        assert data["as_of_date"] == "2024-02-15"
        assert data["totals"]["total_principal"] == "100000"
        assert data["collection_focus"]["interest_due_today"] == "2000.00"
        assert data["todays_due"][0]["payment_status"] == "due"

    def test_report(self, client, clock):
        loan = _create_loan(client)
        clock.set(2024, 2, 14)
        client.post(f"/loans/{loan['id']}/collect-interest")

        data = client.get("/reports", params={"range": "this_month", "as_of": "2024-02-20"}).json()

        assert data["range"] == "this_month"
        assert data["label"] == "Feb 2024"
        assert data["metrics"]["collected_interest"] == "2000.00"
        assert data["metrics"]["collection_rate"] == "1.0000"
        assert data["top_borrowers"][0]["name"] == "Asha"

    def test_unknown_range_falls_back(self, client):
        data = client.get("/reports", params={"range": "decade", "as_of": "2024-02-20"}).json()
        assert data["range"] == "this_month"
