import discord
from discord.ext import commands

from pangolin_guardian.access import DEV, check_permissions
from pangolin_guardian.branding import status_emoji, usage_bar
from pangolin_guardian.status import format_bytes


class Vps(commands.Cog):
    def __init__(self, bot):
        self.bot = bot

    @discord.slash_command(description="CPU, memory and disk load of the host.")
    async def vpsload(self, ctx: discord.ApplicationContext):
        if not await check_permissions(ctx, self.bot.access, DEV):
            return
        await ctx.defer()
        load = await self.bot.sampler.load()
        cpu, memory, disk = load.cpu, load.memory, load.disk

        worst = max(cpu.usage, memory.percent, disk.percent)
        embed = self.bot.embed("🖥️ VPS Load", "success" if worst < 70 else "warning" if worst < 90 else "danger")
        embed.add_field(
            name=f"{status_emoji(cpu.usage)} CPU",
            value=(
                f"`{usage_bar(cpu.usage)}` {cpu.usage:.1f}%\n"
                f"Cores: `{cpu.cores}`\n"
                f"Load: `{' / '.join(f'{value:.2f}' for value in cpu.load_avg)}`"
            ),
            inline=False,
        )
        embed.add_field(
            name=f"{status_emoji(memory.percent)} Memory",
            value=f"`{usage_bar(memory.percent)}` {memory.percent:.1f}%\n"
                  f"Used `{memory.used_mb} MB` of `{memory.total_mb} MB` (free `{memory.free_mb} MB`)",
            inline=False,
        )
        embed.add_field(
            name=f"{status_emoji(disk.percent)} Disk",
            value=f"`{usage_bar(disk.percent)}` {disk.percent:.1f}%\n"
                  f"Used `{format_bytes(disk.used)}` of `{format_bytes(disk.total)}` (free `{format_bytes(disk.free)}`)",
            inline=False,
        )
        await ctx.respond(embed=embed)

    @discord.slash_command(description="Current network throughput of the host.")
    async def vpsbandwidth(self, ctx: discord.ApplicationContext):
        if not await check_permissions(ctx, self.bot.access, DEV):
            return
        await ctx.defer()
        bandwidth = await self.bot.sampler.bandwidth()

        embed = self.bot.embed("🌐 VPS Bandwidth")
        for name, rate in sorted(bandwidth.interfaces.items())[:20]:
            embed.add_field(
                name=name,
                value=f"⬇️ `{rate.rx_kbps:.2f} KB/s` ⬆️ `{rate.tx_kbps:.2f} KB/s`\n"
                      f"Total ⬇️ `{format_bytes(rate.rx_total)}` ⬆️ `{format_bytes(rate.tx_total)}`",
                inline=False,
            )
        embed.add_field(
            name="Total",
            value=f"⬇️ `{bandwidth.rx_kbps:.2f} KB/s` ⬆️ `{bandwidth.tx_kbps:.2f} KB/s`",
            inline=False,
        )
        await ctx.respond(embed=embed)


def setup(bot):
    bot.add_cog(Vps(bot))
