"""
AGRIDETECT TERMINAL CLIENT
==========================

PURPOSE:
A command-line client for the Agridetect API. It creates a session, uploads a
photo, runs identification and diagnosis, and then lets you chat with the
remedy assistant about the result.

USAGE:
    python client.py

    Make sure the server is running first: python run.py
    To use /save and /garden, put a Firebase ID token in AGRIDETECT_ID_TOKEN.

COMMANDS:
    /image <path>      - Upload a photo and run identify + diagnose
    /remedies [region] - Remedies for the diagnosis (optionally for your region)
    /history           - Show the chat with the assistant
    /reset             - Start over with a new photo
    /save              - Save the diagnosis to your garden
    /garden            - List your saved plants
    /quit or /exit     - Exit
    anything else      - Ask the assistant a follow-up question
"""

import mimetypes
import os
from pathlib import Path

import requests


# -----------------------------------------------------------------------------
# CONFIGURATION
# -----------------------------------------------------------------------------
BASE_URL = os.getenv("AGRIDETECT_URL", "http://localhost:8000")
ID_TOKEN = os.getenv("AGRIDETECT_ID_TOKEN", "")
SESSION_ID = None


# -----------------------------------------------------------------------------
# UI HELPERS
# -----------------------------------------------------------------------------

def print_header():
    print("\n" + "=" * 60)
    print("🌿 Agridetect - Your AI-Powered Plant Doctor")
    print("=" * 60)
    print("\nCommands:")
    print("  /image <path>      - Analyze a plant photo")
    print("  /remedies [region] - Remedies for the diagnosis")
    print("  /history           - See chat history")
    print("  /reset             - Start over")
    print("  /save, /garden     - Your garden (needs AGRIDETECT_ID_TOKEN)")
    print("  /quit              - Exit")
    print("=" * 60 + "\n")


def get_user_input():
    try:
        return input("\nYou: ").strip()
    except (KeyboardInterrupt, EOFError):
        return None


def _error_text(response) -> str:
    """The server's {"detail": ...} message when there is one."""
    try:
        detail = response.json().get("detail")
        if isinstance(detail, str):
            return f"❌ {detail}"
    except Exception:
        pass
    return f"❌ Error: {response.status_code} - {response.text}"


def _auth_headers() -> dict:
    return {"Authorization": f"Bearer {ID_TOKEN}"} if ID_TOKEN else {}


def format_diagnosis(state: dict) -> str:
    """Readable summary of an identified/diagnosed session."""
    lines = []
    identity = state.get("identity") or {}
    if identity.get("commonName"):
        latin = f" ({identity['latinName']})" if identity.get("latinName") else ""
        lines.append(f"🌱 Plant: {identity['commonName']}{latin}")
    diagnosis = state.get("diagnosis") or {}
    if diagnosis.get("isHealthy"):
        tips = diagnosis["diseaseDiagnoses"][0]["reason"]
        lines.append(f"✅ Your plant looks healthy. {tips}")
    records = [] if diagnosis.get("isHealthy") else diagnosis.get("diseaseDiagnoses", [])
    for i, record in enumerate(records, 1):
        lines.append(f"{i}. {record['diseaseName']} - {record['confidenceLabel']}")
        lines.append(f"   Why: {record['reason']}")
        if record.get("precaution"):
            lines.append(f"   Precaution: {record['precaution']}")
        if record.get("remedy"):
            lines.append(f"   Remedy: {record['remedy']}")
    return "\n".join(lines)


# -----------------------------------------------------------------------------
# API CALLS
# -----------------------------------------------------------------------------

def ensure_session() -> str:
    global SESSION_ID
    if not SESSION_ID:
        response = requests.post(f"{BASE_URL}/sessions", timeout=10)
        response.raise_for_status()
        SESSION_ID = response.json()["sessionId"]
    return SESSION_ID


def analyze_image(path: str) -> str:
    """Upload the photo, then identify and diagnose. Stops at the first phase that is not a success."""
    file_path = Path(path).expanduser()
    if not file_path.is_file():
        return f"❌ No such file: {file_path}"
    media_type = mimetypes.guess_type(file_path.name)[0] or "application/octet-stream"

    session_id = ensure_session()
    with open(file_path, "rb") as f:
        response = requests.post(
            f"{BASE_URL}/sessions/{session_id}/image",
            files={"image": (file_path.name, f, media_type)},
            timeout=30,
        )
    if response.status_code != 200:
        return _error_text(response)

    print("🔎 Identifying plant...")
    response = requests.post(f"{BASE_URL}/sessions/{session_id}/start", timeout=60)
    if response.status_code != 200:
        return _error_text(response)
    state = response.json()
    if state["phase"] == "error":
        return f"❌ {state['error']}"
    print(format_diagnosis(state))

    print("🩺 Diagnosing...")
    response = requests.post(f"{BASE_URL}/sessions/{session_id}/diagnose", timeout=60)
    if response.status_code != 200:
        return _error_text(response)
    state = response.json()
    if state["phase"] == "error":
        return f"❌ {state['error']}"
    return format_diagnosis(state) + "\n\n💬 Ask me anything about this diagnosis."


def ask(question: str) -> str:
    if not SESSION_ID:
        return "❌ Analyze a photo first: /image <path>"
    try:
        response = requests.post(
            f"{BASE_URL}/sessions/{SESSION_ID}/chat",
            json={"question": question},
            timeout=60,
        )
    except requests.exceptions.Timeout:
        return "❌ Request timed out. Try again."
    if response.status_code == 200:
        return response.json()["answer"]
    return _error_text(response)


def get_remedies(region: str) -> str:
    if not SESSION_ID:
        return "❌ Analyze a photo first: /image <path>"
    response = requests.post(
        f"{BASE_URL}/sessions/{SESSION_ID}/remedies",
        json={"region": region or None},
        timeout=60,
    )
    if response.status_code == 200:
        return response.json()["remedies"]
    return _error_text(response)


def get_chat_history() -> str:
    if not SESSION_ID:
        return "No active session"
    response = requests.get(f"{BASE_URL}/sessions/{SESSION_ID}", timeout=10)
    if response.status_code != 200:
        return "Could not retrieve history"
    messages = response.json().get("chatHistory", [])
    if not messages:
        return "No messages in this session"
    output = f"\n📜 Chat History ({len(messages)} messages):\n" + "-" * 60 + "\n"
    for i, msg in enumerate(messages, 1):
        role = "You" if msg.get("role") == "user" else "Assistant"
        output += f"{i}. {role}: {msg.get('content', '')}\n"
    return output + "-" * 60 + "\n"


def reset_session() -> str:
    if not SESSION_ID:
        return "Nothing to reset"
    response = requests.post(f"{BASE_URL}/sessions/{SESSION_ID}/reset", timeout=10)
    return "🔄 Session cleared. Send a new photo with /image <path>." if response.ok else _error_text(response)


def save_plant() -> str:
    if not SESSION_ID:
        return "❌ Analyze a photo first: /image <path>"
    response = requests.post(f"{BASE_URL}/sessions/{SESSION_ID}/save", headers=_auth_headers(), timeout=30)
    if response.status_code == 200:
        return f"💾 {response.json()['message']}"
    return _error_text(response)


def list_garden() -> str:
    response = requests.get(f"{BASE_URL}/garden", headers=_auth_headers(), timeout=30)
    if response.status_code != 200:
        return _error_text(response)
    plants = response.json()
    if not plants:
        return "Your garden is empty."
    lines = [f"🪴 My Garden ({len(plants)} plants):"]
    for plant in plants:
        diagnosis = plant.get("diagnosis") or {}
        records = diagnosis.get("diseaseDiagnoses") or []
        status = "Healthy" if diagnosis.get("isHealthy") else (records[0]["diseaseName"] if records else "Not diagnosed")
        lines.append(f"  - {plant.get('plantName') or 'Unknown plant'}: {status} (saved {plant['savedAt']})")
    return "\n".join(lines)


# -----------------------------------------------------------------------------
# MAIN LOOP
# -----------------------------------------------------------------------------

def main():
    print_header()
    print("💡 Tip: start with /image path/to/leaf.jpg\n")

    while True:
        try:
            user_input = get_user_input()
            if user_input is None or user_input in ["/quit", "/exit"]:
                print("\n👋 Goodbye!")
                break
            if not user_input:
                continue

            command, _, argument = user_input.partition(" ")
            if command == "/image":
                print(analyze_image(argument.strip()) if argument.strip() else "❌ Usage: /image <path>")
            elif command == "/remedies":
                print(get_remedies(argument.strip()))
            elif command == "/history":
                print(get_chat_history())
            elif command == "/reset":
                print(reset_session())
            elif command == "/save":
                print(save_plant())
            elif command == "/garden":
                print(list_garden())
            elif command.startswith("/"):
                print(f"❌ Unknown command: {command}")
            else:
                print(f"🤖 Assistant: {ask(user_input)}")

        except requests.exceptions.ConnectionError:
            print("❌ Cannot connect to backend. Start it with: python run.py")
        except KeyboardInterrupt:
            print("\n\n👋 Goodbye!")
            break


if __name__ == "__main__":
    main()
