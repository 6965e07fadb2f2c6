"""
GitHub → Telegram Repository Relay

Relays repository events from GitHub to subscribed Telegram chats, and links
Telegram users to GitHub accounts so subscriptions can be permission-checked.
"""

__version__ = "0.1.0"
