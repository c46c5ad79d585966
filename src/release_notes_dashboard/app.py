"""Slack Bolt application that publishes release notes to the App Home tab."""

import os
import logging

from dotenv import load_dotenv
from slack_bolt import App
from slack_bolt.adapter.socket_mode import SocketModeHandler

from release_notes_dashboard.assembler import ReleaseAssembler, Thread
from release_notes_dashboard.blocks import build_release_blocks
from release_notes_dashboard.config import load_config
from release_notes_dashboard.records import parse_rows
from release_notes_dashboard.sheet_client import SheetClient

# Load environment variables
load_dotenv()

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize Slack app
app = App(token=os.environ.get("SLACK_BOT_TOKEN"))


def load_releases() -> list[Thread]:
    """Fetch the sheet and assemble release threads using the saved config."""
    config = load_config()
    client = SheetClient(config.sheet_url, timeout=config.request_timeout)
    assembler = ReleaseAssembler(
        policy=config.noise_policy(),
        overrides=config.load_overrides(),
    )
    return assembler.assemble(parse_rows(client.fetch_rows()))


def publish_home(client, user_id: str) -> None:
    """Publish the release notes view to a user's App Home."""
    blocks = build_release_blocks(load_releases())
    client.views_publish(
        user_id=user_id,
        view={
            "type": "home",
            "blocks": blocks,
        },
    )


@app.event("app_home_opened")
def update_home_tab(client, event, logger):
    """Update the App Home tab when a user opens it."""
    try:
        user_id = event["user"]
        logger.info(f"Home tab opened by user {user_id}")
        publish_home(client, user_id)
        logger.info(f"Successfully updated home tab for user {user_id}")

    except Exception as e:
        logger.error(f"Error updating home tab: {e}", exc_info=True)


@app.action("refresh_release_notes")
def handle_refresh_button(ack, body, client, logger):
    """Handle the Refresh button on the home tab."""
    ack()
    try:
        publish_home(client, body["user"]["id"])
    except Exception as e:
        logger.error(f"Error refreshing home tab: {e}", exc_info=True)


@app.command("/release-notes-refresh")
def handle_refresh_command(ack, respond, client, context):
    """Handle the /release-notes-refresh slash command."""
    ack()
    try:
        publish_home(client, context["user_id"])
        respond("Release notes refreshed!")
    except Exception as e:
        logger.error(f"Error in refresh command: {e}", exc_info=True)
        respond(f"Error refreshing release notes: {str(e)}")


def main():
    """Start the Slack app in Socket Mode."""
    app_token = os.environ.get("SLACK_APP_TOKEN")
    if not app_token:
        raise ValueError("SLACK_APP_TOKEN environment variable is required")

    bot_token = os.environ.get("SLACK_BOT_TOKEN")
    if not bot_token:
        raise ValueError("SLACK_BOT_TOKEN environment variable is required")

    logger.info("Starting Release Notes Dashboard Slack app...")
    handler = SocketModeHandler(app, app_token)
    handler.start()


if __name__ == "__main__":
    main()
