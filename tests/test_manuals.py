"""Tests for manual upload, results capture and template import."""

import base64
import threading
import uuid

import pytest

from scidraft.database import AdminManualTemplate, ManualTemplate
from scidraft.routers.manuals import ImportTemplateRequest, import_template
from scidraft.utils import is_valid_uuid


@pytest.fixture
def fake_storage(monkeypatch):
    uploads = []

    def fake_upload(bucket, path, content, content_type="application/octet-stream"):
        uploads.append((bucket, path, content, content_type))
        return {"url": f"https://storage.example/{bucket}/{path}", "path": path}

    monkeypatch.setattr("scidraft.routers.manuals.upload_file", fake_upload)
    monkeypatch.setattr("scidraft.routers.storage.upload_file", fake_upload)
    return uploads


# ============================================================================
# Template import
# ============================================================================

def test_import_template_normalizes_content(client, db, admin_template, session_id):
    response = client.post(
        "/api/manuals/import-template",
        json={"templateId": admin_template.id, "sessionId": session_id},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["sessionId"] == session_id
    assert body["data"]["session_id"] == session_id
    assert body["data"]["parsed_text"] == "Step 1:\n\n Pipette 25 mL of vinegar.\nStep 2: Titrate."

    manual = db.query(ManualTemplate).filter(ManualTemplate.session_id == session_id).one()
    assert manual.manual_url == "template_import"
    assert manual.practical_title == "Acid-base titration"
    assert manual.unit_code == "CHEM101"


def test_import_template_replaces_invalid_session_id(client, admin_template):
    response = client.post(
        "/api/manuals/import-template",
        json={"templateId": admin_template.id, "sessionId": "session-123"},
    )

    assert response.status_code == 200
    new_session_id = response.json()["sessionId"]
    assert new_session_id != "session-123"
    assert is_valid_uuid(new_session_id)


def test_import_template_without_session_id(client, admin_template):
    response = client.post("/api/manuals/import-template", json={"templateId": admin_template.id})

    assert response.status_code == 200
    assert is_valid_uuid(response.json()["sessionId"])


def test_repeated_import_converges_on_one_row(client, db, admin_template, session_id):
    other = AdminManualTemplate(
        unit_code="BIO110",
        practical_title="Osmosis",
        practical_number=1,
        practical_content="Place potato cylinders in sucrose solutions.",
    )
    db.add(other)
    db.commit()

    first = client.post("/api/manuals/import-template", json={"templateId": admin_template.id, "sessionId": session_id})
    second = client.post("/api/manuals/import-template", json={"templateId": other.id, "sessionId": session_id})

    assert first.json()["data"]["id"] == second.json()["data"]["id"]
    rows = db.query(ManualTemplate).filter(ManualTemplate.session_id == session_id).all()
    assert len(rows) == 1
    db.refresh(rows[0])
    assert rows[0].practical_title == "Osmosis"


def test_concurrent_imports_of_new_session_leave_one_row(file_session_factory, session_id):
    seed = file_session_factory()
    templates = [
        AdminManualTemplate(unit_code="CHEM101", practical_title="Titration", practical_content="Titrate vinegar against NaOH."),
        AdminManualTemplate(unit_code="BIO110", practical_title="Osmosis", practical_content="Place potato cylinders in sucrose."),
    ]
    seed.add_all(templates)
    seed.commit()
    template_ids = [t.id for t in templates]
    seed.close()

    barrier = threading.Barrier(len(template_ids))
    responses, errors = [], []

    def run_import(template_id):
        db = file_session_factory()
        try:
            body = ImportTemplateRequest.model_validate({"templateId": template_id, "sessionId": session_id})
            barrier.wait()
            responses.append(import_template(body, db))
        except Exception as e:
            errors.append(e)
        finally:
            db.close()

    threads = [threading.Thread(target=run_import, args=(tid,)) for tid in template_ids]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert errors == []
    assert len(responses) == 2
    assert responses[0]["data"]["id"] == responses[1]["data"]["id"]

    db = file_session_factory()
    rows = db.query(ManualTemplate).filter(ManualTemplate.session_id == session_id).all()
    db.close()
    assert len(rows) == 1
    assert rows[0].practical_title in ("Titration", "Osmosis")


def test_import_template_missing_id(client):
    response = client.post("/api/manuals/import-template", json={})
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "templateId is required"}


def test_import_template_not_found(client):
    response = client.post("/api/manuals/import-template", json={"templateId": str(uuid.uuid4())})
    assert response.status_code == 404
    assert response.json()["error"] == "Template not found"


@pytest.mark.parametrize("content", [None, "", "  \r\n\t  ", "too short"])
def test_import_template_rejects_empty_content(client, db, content, session_id):
    template = AdminManualTemplate(practical_title="Empty", practical_content=content)
    db.add(template)
    db.commit()

    response = client.post("/api/manuals/import-template", json={"templateId": template.id, "sessionId": session_id})

    assert response.status_code == 400
    assert response.json()["error"] == "Template content is empty or invalid"
    assert db.query(ManualTemplate).count() == 0


# ============================================================================
# Upload & results
# ============================================================================

def test_upload_manual_with_file(client, db, fake_storage):
    payload = {
        "unitName": "Analytical Chemistry",
        "practicalTitle": "Acid-base titration",
        "practicalNumber": "3",
        "manualContent": "Titrate\t\tthe   sample.",
        "file": {"base64": base64.b64encode(b"%PDF-1.4").decode(), "name": "lab manual.pdf", "type": "application/pdf"},
    }

    response = client.post("/api/manuals/upload", json=payload)

    assert response.status_code == 200
    body = response.json()
    assert is_valid_uuid(body["sessionId"])
    assert body["manualUrl"].startswith("https://storage.example/manuals/")

    bucket, path, content, content_type = fake_storage[0]
    assert (bucket, content, content_type) == ("manuals", b"%PDF-1.4", "application/pdf")
    assert path.endswith("lab_manual.pdf")

    manual = db.query(ManualTemplate).filter(ManualTemplate.session_id == body["sessionId"]).one()
    assert manual.parsed_text == "Titrate the sample."
    assert manual.practical_number == 3
    assert manual.unit_code == "Analytical Chemistry"


def test_upload_manual_missing_fields(client):
    response = client.post("/api/manuals/upload", json={"unitName": "Chemistry"})
    assert response.status_code == 400
    assert response.json()["error"] == "Missing required fields"


def test_upload_manual_bad_base64(client, fake_storage):
    payload = {
        "unitName": "Chemistry",
        "practicalTitle": "Titration",
        "practicalNumber": 1,
        "file": {"base64": "***", "name": "x.pdf"},
    }
    response = client.post("/api/manuals/upload", json=payload)
    assert response.status_code == 400
    assert fake_storage == []


def test_save_results(client, db, manual, session_id):
    response = client.post("/api/manuals/results", json={"sessionId": session_id, "results": " 21.4 mL "})

    assert response.status_code == 200
    db.expire_all()
    assert db.query(ManualTemplate).filter(ManualTemplate.session_id == session_id).one().results == "21.4 mL"


def test_save_results_unknown_session(client, session_id):
    response = client.post("/api/manuals/results", json={"sessionId": session_id, "results": "21.4 mL"})
    assert response.status_code == 404


def test_upload_drawing(client, fake_storage):
    payload = {"file": {"base64": base64.b64encode(b"\x89PNG").decode(), "name": "circuit.png"}}

    response = client.post("/api/storage/upload", json=payload)

    assert response.status_code == 200
    assert fake_storage[0][0] == "drawings"
    assert response.json()["path"].startswith("drawings/")


def test_upload_drawing_requires_file(client):
    assert client.post("/api/storage/upload", json={}).status_code == 400
