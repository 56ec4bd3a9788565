"""
Example usage of the SciDraft API.

Walks through the student flow with Python's requests library:
pick a template, add results, generate a draft, pay with M-Pesa and
view the unlocked draft.
"""

import time
from typing import Dict, List, Optional

import requests

# Configuration
BASE_URL = "http://localhost:8000/api"


def check_health() -> bool:
    """Check if API is healthy."""
    try:
        response = requests.get(f"{BASE_URL}/health", timeout=5)
    except requests.exceptions.ConnectionError:
        print("❌ API is not responding")
        return False

    data = response.json()
    print(f"✅ API is up (database: {data['database']}, ai: {data['ai']})")
    return True


def search_templates(q: str, year: Optional[int] = None) -> List[Dict]:
    """Search the admin-curated template catalog."""
    print(f"\n🔎 Searching templates for '{q}'...")

    params = {"q": q, "pageSize": 5}
    if year is not None:
        params["year"] = year
    response = requests.get(f"{BASE_URL}/templates", params=params)

    templates = response.json().get("data", [])
    for template in templates:
        print(f"   - {template['id']}: {template['practical_title']} ({template['unit_code']})")
    return templates


def import_template(template_id: str) -> str:
    """Start a drafting session from a template. Returns the session id."""
    response = requests.post(f"{BASE_URL}/manuals/import-template", json={"templateId": template_id})
    result = response.json()

    if not result.get("success"):
        print(f"❌ Import failed: {result.get('error')}")
        return None

    print(f"✅ Session created: {result['sessionId']}")
    return result["sessionId"]


def save_results(session_id: str, results: str) -> bool:
    response = requests.post(f"{BASE_URL}/manuals/results", json={"sessionId": session_id, "results": results})
    return response.status_code == 200


def generate_draft(session_id: str) -> bool:
    """Generate the draft and poll until it leaves the processing state."""
    print("\n🧪 Generating draft...")

    response = requests.post(f"{BASE_URL}/generate-draft", json={"sessionId": session_id})
    if response.status_code != 200:
        print(f"❌ Draft generation failed: {response.json().get('error')}")
        return False

    for _ in range(10):
        status = requests.get(f"{BASE_URL}/drafts/status", params={"sessionId": session_id}).json()
        if status["data"]["status"] != "processing":
            print(f"✅ Draft status: {status['data']['status']}")
            return status["data"]["status"] == "completed"
        time.sleep(2)

    return False


def pay_for_session(session: requests.Session, session_id: str, phone: str) -> bool:
    """Send an STK push and poll the payment status."""
    print(f"\n📱 Sending M-Pesa prompt to {phone}...")

    csrf = session.get(f"{BASE_URL}/payments/csrf").json()["csrfToken"]
    response = session.post(
        f"{BASE_URL}/payments/mpesa/initiate",
        json={"sessionId": session_id, "phoneNumber": phone},
        headers={"X-CSRF-Token": csrf},
    )
    if response.status_code != 200:
        print(f"❌ Payment failed to start: {response.json().get('error')}")
        return False

    for _ in range(30):
        status = session.get(f"{BASE_URL}/payments/mpesa/status", params={"sessionId": session_id}).json()
        if status.get("status") in ("success", "failed"):
            print(f"   Payment {status['status']}")
            return status["status"] == "success"
        time.sleep(3)

    return False


def view_draft(session: requests.Session, session_id: str) -> Dict:
    response = session.get(f"{BASE_URL}/drafts/view", params={"sessionId": session_id})
    if response.status_code != 200:
        print(f"❌ Draft locked: {response.json().get('error')}")
        return None

    draft = response.json()["data"]["draft"]
    print(f"\n📝 {draft['title']}")
    print(draft["introduction"][:300])
    return draft


def main():
    """Run example workflow."""
    print("=" * 60)
    print("SciDraft API - Example Usage")
    print("=" * 60)

    if not check_health():
        print("\n⚠️  API is not running. Start it with:")
        print("   scidraft serve --reload")
        return

    templates = search_templates("titration")
    if not templates:
        print("\n💭 No templates found. Ask an admin to add one.")
        return

    session_id = import_template(templates[0]["id"])
    if not session_id:
        return

    save_results(session_id, "Titres: 21.3, 21.5, 21.4 mL of 0.1 M NaOH")

    if not generate_draft(session_id):
        return

    # Payment is commented out to avoid real charges
    print("\n💡 To unlock the draft, uncomment the payment lines below.")
    # with requests.Session() as session:
    #     if pay_for_session(session, session_id, "0712345678"):
    #         view_draft(session, session_id)

    print("\n" + "=" * 60)
    print("Example completed!")
    print("=" * 60)


if __name__ == "__main__":
    main()
