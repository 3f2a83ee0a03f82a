import discord

from src.modules.report_sync.models import Report


def build_report_embed(report: Report) -> discord.Embed:
    """把一条举报渲染为频道中展示的 Embed。纯函数，不做任何 I/O。"""
    reported_users = [f"<@{user.id}> ({user.id})" for user in report.reported_users]
    links = [f"<{link}>" for link in report.links]
    tags = [tag.name for tag in report.tags]

    description = f"**Users:** \n{', '.join(reported_users)}"
    if report.reason:
        description += f"\n\n**Reason:** {report.reason}"

    if tags:
        description += f"\n\n**Tags:** \n{', '.join(tags)}"

    if links:
        description += "\n\n**Links:** \n" + "\n".join(links)

    created = report.insert_date.strftime('%Y-%m-%d %H:%M') if report.insert_date else "Unknown"
    footer_text = f"Confirmations: {len(report.confirmation_users)} | Created: {created}"

    embed = discord.Embed(description=description, timestamp=report.update_date)
    embed.set_author(name=f"Report ID: {report.id}")
    embed.set_footer(text=footer_text)
    return embed
