"""Operator dashboard using Streamlit."""

import streamlit as st

from relay.client import RelayAPIError, RelayClient
from relay.config import config
from relay.models import RESPONSE_MODE_AUTO, RESPONSE_MODE_MANUAL

MAX_PREVIEW_LENGTH = 80
MODE_OPTIONS = (RESPONSE_MODE_AUTO, RESPONSE_MODE_MANUAL)

config.setup_logging()
logger = config.get_logger(__name__)


class SessionState:
    """Centralized session state management."""

    @staticmethod
    def initialize() -> None:
        """Initialize all session state variables."""
        defaults = {
            "client": None,
            "selected_phone": None,
        }

        for key, default_value in defaults.items():
            if key not in st.session_state:
                st.session_state[key] = default_value

        if st.session_state.client is None:
            st.session_state.client = RelayClient()


def preview(text: str) -> str:
    """Shorten a message for list views."""
    if len(text) > MAX_PREVIEW_LENGTH:
        return text[:MAX_PREVIEW_LENGTH] + "..."
    return text


def render_settings(client: RelayClient) -> None:
    """Render reply-mode settings in the sidebar."""
    with st.sidebar:
        st.header("Reply Settings")
        try:
            current = client.settings()
        except RelayAPIError as e:
            st.error(f"Cannot load settings: {e}")
            return

        mode = st.radio(
            "Response mode",
            MODE_OPTIONS,
            index=MODE_OPTIONS.index(current["responseMode"]),
            help="Manual mode answers with the default response only.",
        )
        default_response = st.text_area(
            "Default response", value=current["defaultResponse"]
        )
        if st.button("Save Settings", use_container_width=True):
            try:
                client.update_settings(mode, default_response)
            except RelayAPIError as e:
                st.error(f"Failed to save settings: {e}")
            else:
                st.success("Settings saved")


def render_conversation_list(client: RelayClient) -> None:
    """Render every conversation, most recent first."""
    st.header("Conversations")
    try:
        conversations = client.conversations()
    except RelayAPIError as e:
        st.error(f"Cannot load conversations: {e}")
        return

    if not conversations:
        st.info("No conversations yet.")
        return

    for conversation in conversations:
        last = conversation.get("lastMessage") or {}
        label = conversation.get("name") or conversation["phone"]
        col1, col2 = st.columns([3, 1])
        with col1:
            st.markdown(f"**{label}** ({conversation['state']})")
            st.caption(preview(last.get("content", "")))
        with col2:
            if st.button("Open", key=f"open-{conversation['phone']}"):
                st.session_state.selected_phone = conversation["phone"]
                st.rerun()


def render_conversation_detail(client: RelayClient, phone: str) -> None:
    """Render one conversation with a reply box and its documents."""
    try:
        conversation = client.conversation(phone)
    except RelayAPIError as e:
        st.error(f"Cannot load conversation: {e}")
        return

    st.header(conversation.get("name") or phone)
    if st.button("Back to list"):
        st.session_state.selected_phone = None
        st.rerun()

    for message in conversation["messages"]:
        role = "user" if message["direction"] == "received" else "assistant"
        with st.chat_message(role):
            st.write(message["content"])
            tags = [message["timestamp"]]
            if message.get("automatic"):
                tags.append("automatic")
            if message.get("status"):
                tags.append(message["status"])
            st.caption(" | ".join(tags))

    reply = st.text_input("Reply", key=f"reply-{phone}")
    if st.button("Send", use_container_width=True) and reply.strip():
        try:
            delivered = client.send(phone, reply)
        except RelayAPIError as e:
            st.error(f"Failed to send: {e}")
        else:
            if delivered:
                st.success("Message sent")
            else:
                st.warning("Message recorded but not delivered")
            st.rerun()

    render_documents(client, phone)


def render_documents(client: RelayClient, phone: str) -> None:
    """Render indexed documents and the upload form for one owner."""
    st.subheader("Documents")
    try:
        documents = client.documents(phone)
    except RelayAPIError as e:
        st.error(f"Cannot load documents: {e}")
        documents = []

    for document in documents:
        st.write(
            f"**{document['source']}** - {document['chunks']} chunks, "
            f"updated {document['lastUpdated']}"
        )

    uploaded_file = st.file_uploader(
        "Upload a PDF or TXT document",
        type=["pdf", "txt"],
        help="Indexed documents ground the automatic replies for this contact.",
    )
    if uploaded_file and st.button("Index Document", use_container_width=True):
        with st.spinner(f"Indexing '{uploaded_file.name}'..."):
            try:
                result = client.upload(
                    uploaded_file.name, uploaded_file.getvalue(), phone
                )
            except RelayAPIError as e:
                logger.exception("Upload failed")
                st.error(f"Upload failed: {e}")
                return
        if result["success"]:
            st.success(result["message"])
        else:
            st.error(result["message"])


def main() -> None:
    """Main entry point for the operator dashboard."""
    st.set_page_config(page_title="RAG Relay Dashboard", layout="wide")

    SessionState.initialize()
    client = st.session_state.client

    st.title("RAG Relay Dashboard")
    st.markdown("---")

    render_settings(client)

    if st.session_state.selected_phone:
        render_conversation_detail(client, st.session_state.selected_phone)
    else:
        render_conversation_list(client)


if __name__ == "__main__":
    main()
