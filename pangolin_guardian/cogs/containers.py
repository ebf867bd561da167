import discord
from discord.ext import commands

from pangolin_guardian import branding
from pangolin_guardian.access import ADMIN, DEV, check_permissions
from pangolin_guardian.cogs import container_names
from pangolin_guardian.errors import ValidationError
from pangolin_guardian.status import Health, format_bytes
from pangolin_guardian.updates import UpdateState

HEALTH_COLOURS = {
    Health.HEALTHY: "success",
    Health.DEGRADED: "danger",
    Health.STOPPED: "warning",
    Health.MISSING: "warning",
}


class Docker(commands.Cog):
    docker = discord.SlashCommandGroup("docker", "Manage Docker containers")

    def __init__(self, bot):
        self.bot = bot

    @docker.command(name="list", description="List all Docker containers.")
    async def list_containers(self, ctx: discord.ApplicationContext):
        if not await check_permissions(ctx, self.bot.access, DEV):
            return
        await ctx.defer()
        containers = await self.bot.gateway.list_containers()

        embed = self.bot.embed("📦 Docker Containers")
        for container in containers[:25]:
            embed.add_field(
                name=branding.format_container_name(container.name),
                value=f"Status: `{container.status or container.state}`\nImage: `{container.image}`",
                inline=False,
            )
        if not containers:
            embed.description = "No containers found."
        elif len(containers) > 25:
            embed.description = f"Showing 25 of {len(containers)} containers."
        await ctx.respond(embed=embed)

    @docker.command(description="Start, stop, restart or delete a container.")
    async def execute(
        self,
        ctx: discord.ApplicationContext,
        action: discord.Option(str, choices=["start", "stop", "restart", "delete"]),
        container_name: discord.Option(str, autocomplete=discord.utils.basic_autocomplete(container_names)),
    ):
        if not await check_permissions(ctx, self.bot.access, ADMIN):
            return
        await ctx.defer()

        gateway = self.bot.gateway
        if action == "delete":
            await gateway.remove(container_name)
            response = f"Container `{container_name}` has been deleted."
        elif action == "restart":
            method = await gateway.restart(container_name)
            response = f"Container `{container_name}` has been restarted ({method.value} restart)."
        elif action == "start":
            await gateway.start(container_name)
            response = f"Container `{container_name}` has been started."
        else:
            await gateway.stop(container_name)
            response = f"Container `{container_name}` has been stopped."

        embed = self.bot.embed("**__Docker Management__**", "success")
        embed.description = response
        await ctx.respond(embed=embed)

    @docker.command(description="List, pull or remove Docker images.")
    async def images(
        self,
        ctx: discord.ApplicationContext,
        action: discord.Option(str, choices=["list", "pull", "remove"]),
        image_name: discord.Option(str, required=False) = None,
        force: discord.Option(bool, description="Force removal", required=False) = False,
    ):
        if not await check_permissions(ctx, self.bot.access, DEV if action == "list" else ADMIN):
            return
        if action != "list" and not image_name:
            raise ValidationError("Please provide an image name to pull or remove.")
        await ctx.defer()

        gateway = self.bot.gateway
        if action == "list":
            images = await gateway.list_images()
            listing = "\n".join(f"**{name}** - Size: {format_bytes(size)}" for name, size in images)
            embed = self.bot.embed("**__Docker Image Management__**")
            if len(listing) > 4000:
                embed.description = f"{len(images)} images, see attachment."
                await ctx.respond(embed=embed, file=branding.text_attachment(listing, "docker-images.txt"))
                return
            embed.description = listing or "No images found."
        elif action == "pull":
            tags = await gateway.pull_image(image_name)
            embed = self.bot.embed("**__Docker Image Management__**", "success")
            embed.description = f"Image `{tags}` has been pulled successfully."
        else:
            await gateway.remove_image(image_name, force=force)
            embed = self.bot.embed("**__Docker Image Management__**", "success")
            embed.description = f"Image `{image_name}` has been removed successfully."
        await ctx.respond(embed=embed)

    @docker.command(description="Prune Docker images.")
    async def prune(
        self,
        ctx: discord.ApplicationContext,
        all: discord.Option(bool, description="Prune all unused images, not just dangling ones", required=True),
    ):
        if not await check_permissions(ctx, self.bot.access, ADMIN):
            return
        await ctx.defer()
        deleted, reclaimed = await self.bot.gateway.prune_images(dangling_only=not all)

        embed = self.bot.embed("**__Docker Image Pruning__**", "success")
        embed.description = f"Removed **{deleted}** images, reclaimed `{format_bytes(reclaimed)}`."
        await ctx.respond(embed=embed)

    @docker.command(description="Get system-wide Docker information.")
    async def info(self, ctx: discord.ApplicationContext):
        if not await check_permissions(ctx, self.bot.access, DEV):
            return
        await ctx.defer()
        info = await self.bot.gateway.engine_info()

        embed = self.bot.embed("📊 **Docker System Info**")
        embed.add_field(name="Version", value=f"`{info['version']}`")
        embed.add_field(name="OS", value=f"`{info['os']}`")
        embed.add_field(name="CPUs / Memory", value=f"`{info['cpus']}` / `{format_bytes(info['memory'])}`")
        embed.add_field(
            name="Containers",
            value=f"Total `{info['containers']}` • Running `{info['running']}` • "
                  f"Paused `{info['paused']}` • Stopped `{info['stopped']}`",
            inline=False,
        )
        embed.add_field(name="Images", value=f"`{info['images']}`")
        await ctx.respond(embed=embed)

    @docker.command(description="Show detailed information about a container.")
    async def show(
        self,
        ctx: discord.ApplicationContext,
        container_name: discord.Option(str, autocomplete=discord.utils.basic_autocomplete(container_names)),
    ):
        if not await check_permissions(ctx, self.bot.access, DEV):
            return
        await ctx.defer()
        details = await self.bot.gateway.inspect(container_name)
        status = await self.bot.gateway.get_status(container_name)

        embed = self.bot.embed(f"📦 Container: {branding.format_container_name(details.name)}", HEALTH_COLOURS[status.health])
        embed.add_field(name="Status", value=f"{branding.EMOJIS['healthy'] if status.running else branding.EMOJIS['error']} {details.state}")
        embed.add_field(name="ID", value=f"`{details.short_id}`")
        embed.add_field(name="Created", value=details.created or "Unknown")
        if status.running:
            embed.add_field(name="CPU", value=f"`{status.cpu_display}`")
            embed.add_field(name="Memory", value=f"`{status.memory_display}`")
        embed.add_field(name="Image", value=f"`{details.image}`")
        embed.add_field(name="Network Mode", value=details.network_mode)
        embed.add_field(
            name="Networks",
            value="\n".join(f"{network}: {ip}" for network, ip in details.networks.items()) or "None",
        )
        embed.add_field(name="Port Mappings", value=branding.truncate("\n".join(details.ports) or "None", 1000), inline=False)
        embed.add_field(name="Volumes", value=branding.truncate("\n".join(details.mounts) or "None", 500), inline=False)
        await ctx.respond(embed=embed)

    @docker.command(description="Check containers for newer images in their registry.")
    async def check(
        self,
        ctx: discord.ApplicationContext,
        show_all: discord.Option(bool, description="Also list containers that are up to date", required=False) = False,
        exclude_failed: discord.Option(bool, description="Exclude containers that fail the check from now on", required=False) = False,
    ):
        if not await check_permissions(ctx, self.bot.access, ADMIN if exclude_failed else DEV):
            return
        await ctx.defer()
        results = await self.bot.updates.check(exclude_failed=exclude_failed)

        updates = [result for result in results if result.state is UpdateState.UPDATE_AVAILABLE]
        errors = [result for result in results if result.state is UpdateState.ERROR]
        current = [result for result in results if result.state is UpdateState.CURRENT]
        excluded = [result for result in results if result.state is UpdateState.EXCLUDED]

        embed = self.bot.embed("🔍 Docker Update Check", "warning" if updates or errors else "success")
        embed.description = (
            f"{branding.EMOJIS['warning']} {len(updates)} updates available • "
            f"{branding.EMOJIS['healthy']} {len(current)} up to date • "
            f"{branding.EMOJIS['error']} {len(errors)} errors • "
            f"{len(excluded)} excluded"
        )
        if updates:
            embed.add_field(
                name="Updates Available",
                value=branding.truncate("\n".join(f"`{result.name}` ({result.image})" for result in updates)),
                inline=False,
            )
        if errors:
            embed.add_field(
                name="Errors",
                value=branding.truncate("\n".join(
                    f"`{result.name}`: {result.detail}" + (" (now excluded)" if result.newly_excluded else "")
                    for result in errors
                )),
                inline=False,
            )
        if show_all and current:
            embed.add_field(
                name="Up To Date",
                value=branding.truncate("\n".join(f"`{result.name}`" for result in current)),
                inline=False,
            )
        if show_all and excluded:
            embed.add_field(
                name="Excluded",
                value=branding.truncate(", ".join(f"`{result.name}`" for result in excluded)),
                inline=False,
            )
        await ctx.respond(embed=embed)

    @docker.command(description="Manage containers excluded from update checks.")
    async def exclude(
        self,
        ctx: discord.ApplicationContext,
        action: discord.Option(str, choices=["list", "add", "remove", "clear"]),
        container_name: discord.Option(
            str,
            description="Container, or a comma-separated list for add",
            autocomplete=discord.utils.basic_autocomplete(container_names),
            required=False,
        ) = None,
    ):
        if not await check_permissions(ctx, self.bot.access, DEV if action == "list" else ADMIN):
            return
        if action in ("add", "remove") and not container_name:
            raise ValidationError(f"Please provide a container name to {action}.")

        exclusions = self.bot.exclusions
        embed = self.bot.embed("🚫 Update Check Exclusions", "info" if action == "list" else "success")
        if action == "list":
            names = exclusions.names()
            embed.description = "\n".join(f"• `{name}`" for name in names) if names else "No containers are excluded."
        elif action == "add":
            added = exclusions.add(container_name.split(","))
            embed.description = (
                f"Excluded {', '.join(f'`{name}`' for name in added)} from update checks."
                if added else "Those containers were already excluded."
            )
        elif action == "remove":
            if exclusions.remove(container_name):
                embed.description = f"`{container_name}` will be checked for updates again."
            else:
                embed.color = branding.COLORS["warning"]
                embed.description = f"`{container_name}` was not excluded."
        else:
            embed.description = f"Removed {exclusions.clear()} containers from the exclusion list."
        await ctx.respond(embed=embed)

    @docker.command(description="Check the health of a Docker container.")
    async def health(
        self,
        ctx: discord.ApplicationContext,
        container_name: discord.Option(str, autocomplete=discord.utils.basic_autocomplete(container_names)),
    ):
        if not await check_permissions(ctx, self.bot.access, DEV):
            return
        await ctx.defer()
        status = await self.bot.gateway.get_status(container_name)

        embed = self.bot.embed(f"🩺 **Health Check: `{container_name}`**", HEALTH_COLOURS[status.health])
        embed.description = f"🔍 **Status:** `{status.health.value.upper()}`"
        if status.exists:
            embed.add_field(name="State", value=f"`{status.status or status.state}`", inline=False)
            embed.add_field(name="Uptime", value=f"`{status.uptime}`")
            embed.add_field(name="CPU", value=f"`{status.cpu_display}`")
            embed.add_field(name="Memory", value=f"`{status.memory_display}`")
        await ctx.respond(embed=embed)


def setup(bot):
    bot.add_cog(Docker(bot))
