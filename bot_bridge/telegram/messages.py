"""Message templates and inline keyboards sent by the bot. All text is HTML."""

from html import escape
from typing import Any
from urllib.parse import quote


def display_name(username: str | None, first_name: str | None, fallback: str = "friend") -> str:
    if username:
        return f"@{username.lstrip('@')}"
    return first_name or fallback


def web_app_link(web_app_url: str, ref: str | int | None) -> str:
    if ref in (None, ""):
        return web_app_url
    return f"{web_app_url}?ref={quote(str(ref))}"


def start_keyboard(web_app_url: str, community_url: str, ref: str | int | None) -> dict[str, Any]:
    return {
        "inline_keyboard": [
            [{"text": "✨Start now!✨", "web_app": {"url": web_app_link(web_app_url, ref)}}],
            [{"text": "👥Join Community👥", "url": community_url}],
        ]
    }


def start_caption(name: str, community_url: str) -> str:
    return (
        f"<b>Hey, {escape(name)}\n👋 Welcome to The MEGADOGS Adventures!</b>\n\n"
        "✨ <b>Play MEGADOGS</b>: Tap the dog bone and watch your balance fetch amazing rewards!\n"
        "🐕 <b>Mine for MEGA</b>: Collect MEGADOGS Tokens with every action.\n"
        f'🔗 <b>Connect</b>: <a href="{escape(community_url)}">MegaDog Telegram</a>'
    )


def welcome_text(name: str, has_referrer: bool) -> str:
    text = (
        f"<b>Welcome, {escape(name)}!</b> 🐾\n\n"
        "Your MEGADOGS account is ready. Tap the button below to start collecting rewards."
    )
    if has_referrer:
        text += "\n\n🎁 You joined through a friend's invite, so you both get a bonus!"
    return text


def referral_text(new_user_name: str) -> str:
    return (
        "🎉 <b>New referral!</b>\n\n"
        f"{escape(new_user_name)} just joined MEGADOGS with your invite link. "
        "Keep sharing to earn more rewards!"
    )
