import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click

from . import __version__
from .clean import CLEAN_PRESETS, CleanOptions, analyze_claude_json, clean_claude_json, clear_project_history
from .config import ConfigManager, ProviderRecord, SyncConfig
from .errors import CcmanError, DecryptionFailed
from .gmn import GMN_OPENAI_BASE_URLS, parse_platforms, setup_gmn
from .mcp import MCP_APPS, McpManager, parse_env_pairs
from .migrate import rollback_migration, run_all_migrations
from .provider import ProviderManager, export_stores, import_stores
from .sync.orchestrator import SyncOrchestrator
from .tools import TOOL_ORDER, TOOLS
from .utils import format_table, format_timestamp, human_readable_size, mask_sensitive_value, normalize_url


# Windows GBK终端兼容性：安全输出Unicode字符
def safe_echo(message, **kwargs):
    """在Windows GBK终端下安全输出Unicode字符"""
    try:
        click.echo(message, **kwargs)
    except UnicodeEncodeError:
        safe_message = message.replace('✓', '[OK]').replace('✗', '[X]').replace('⚠️', '[WARN]').replace('→', '->')
        click.echo(safe_message, **kwargs)


def fail(error) -> None:
    click.echo(f"Error: {error}", err=True)
    sys.exit(1)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@click.group()
@click.version_option(version=__version__, prog_name="ccman")
@click.option('--verbose', '-v', is_flag=True, help='输出调试日志')
def cli(verbose: bool):
    """ccman - AI 编程工具配置管理

    管理 Codex / Claude Code / Gemini CLI / OpenCode / OpenClaw 的服务商配置，
    支持一键切换和 WebDAV 加密同步。
    """
    _setup_logging(verbose)


def _print_provider(provider: ProviderRecord, is_current: bool = False, verbose: bool = False) -> None:
    marker = "* " if is_current else "  "
    safe_echo(f"{marker}{provider.name:<20} {provider.base_url or '(default)'}")
    if verbose:
        safe_echo(f"    ID: {provider.id}")
        safe_echo(f"    API Key: {mask_sensitive_value(provider.api_key)}")
        if provider.model:
            safe_echo(f"    Model: {provider.model}")
        if provider.desc:
            safe_echo(f"    Description: {provider.desc}")
        safe_echo(f"    Last used: {format_timestamp(provider.last_used_at)}")


def make_tool_group(tool: str) -> click.Group:
    descriptor = TOOLS[tool]

    @click.group(name=tool, help=f"管理 {descriptor.display_name} 服务商")
    def group():
        pass

    @group.command()
    @click.argument('name')
    @click.option('--base-url', default="", help='API Base URL')
    @click.option('--api-key', prompt=True, hide_input=True, help='API Key')
    @click.option('--model', help='模型（部分工具支持 JSON 元数据）')
    @click.option('--desc', help='描述')
    @click.option('--preset', help='使用预设的 Base URL')
    @click.option('--use', 'use_now', is_flag=True, help='添加后立即切换')
    def add(name: str, base_url: str, api_key: str, model: Optional[str], desc: Optional[str],
            preset: Optional[str], use_now: bool):
        """添加服务商"""
        try:
            manager = ProviderManager(tool)
            if preset:
                match = next((p for p in manager.list_presets() if p.name.lower() == preset.lower()), None)
                if match is None:
                    raise click.BadParameter(f"Unknown preset '{preset}'", param_hint='--preset')
                base_url = base_url or match.base_url
            provider = manager.add(name, normalize_url(base_url), api_key, model=model, desc=desc)
            safe_echo(f"✓ Provider '{provider.name}' added")
            safe_echo(f"  Base URL: {provider.base_url or '(default)'}")
            safe_echo(f"  API Key: {mask_sensitive_value(provider.api_key)}")
            if use_now:
                manager.switch(provider.id)
                safe_echo(f"✓ Switched {descriptor.display_name} to '{provider.name}'")
        except CcmanError as e:
            fail(e)

    @group.command(name="list")
    @click.option('--verbose', is_flag=True, help='显示详细信息')
    def list_cmd(verbose: bool):
        """列出服务商"""
        try:
            manager = ProviderManager(tool)
            providers = manager.list()
            if not providers:
                click.echo(f"No providers found. Use 'ccman {tool} add' to create one.")
                return
            current = manager.current()
            click.echo(f"{descriptor.display_name} providers:")
            for provider in providers:
                _print_provider(provider, current is not None and provider.id == current.id, verbose)
        except CcmanError as e:
            fail(e)

    @group.command()
    @click.argument('name')
    def use(name: str):
        """切换服务商并写入工具配置"""
        try:
            provider = ProviderManager(tool).switch(name)
            safe_echo(f"✓ Switched {descriptor.display_name} to '{provider.name}'")
            for entry in descriptor.config_paths.values():
                safe_echo(f"  Updated {entry.resolve()}")
        except CcmanError as e:
            fail(e)

    @group.command()
    def current():
        """显示当前服务商"""
        try:
            provider = ProviderManager(tool).current()
            if provider is None:
                click.echo(f"No current {descriptor.display_name} provider")
                return
            _print_provider(provider, True, verbose=True)
        except CcmanError as e:
            fail(e)

    @group.command()
    @click.argument('name')
    @click.option('--rename', help='新名称')
    @click.option('--base-url', help='API Base URL')
    @click.option('--api-key', help='API Key')
    @click.option('--model', help='模型')
    @click.option('--desc', help='描述')
    def edit(name: str, rename: Optional[str], base_url: Optional[str], api_key: Optional[str],
             model: Optional[str], desc: Optional[str]):
        """修改服务商"""
        try:
            manager = ProviderManager(tool)
            provider = manager.resolve(name)
            updated = manager.edit(
                provider.id,
                name=rename,
                base_url=normalize_url(base_url) if base_url is not None else None,
                api_key=api_key,
                model=model,
                desc=desc,
            )
            safe_echo(f"✓ Provider '{updated.name}' updated")
        except CcmanError as e:
            fail(e)

    @group.command()
    @click.argument('names', nargs=-1, required=True)
    def remove(names: tuple):
        """删除服务商"""
        manager = ProviderManager(tool)
        errors = 0
        for name in names:
            try:
                provider = manager.remove(manager.resolve(name).id)
                safe_echo(f"✓ Removed '{provider.name}'")
            except CcmanError as e:
                click.echo(f"Error: {e}", err=True)
                errors += 1
        if errors:
            sys.exit(1)

    @group.command()
    @click.argument('source')
    @click.argument('new_name')
    @click.option('--api-key', help='新的 API Key')
    def clone(source: str, new_name: str, api_key: Optional[str]):
        """复制服务商"""
        try:
            provider = ProviderManager(tool).clone(source, new_name, api_key=api_key)
            safe_echo(f"✓ Cloned '{source}' as '{provider.name}'")
        except CcmanError as e:
            fail(e)

    @group.command()
    def presets():
        """列出可用预设"""
        try:
            rows = [[p.name, p.base_url or "(default)", p.description] for p in ProviderManager(tool).list_presets()]
            click.echo(format_table(["Name", "Base URL", "Description"], rows))
        except CcmanError as e:
            fail(e)

    @group.command(name="add-preset")
    @click.argument('name')
    @click.argument('base_url')
    @click.option('--description', default="", help='描述')
    def add_preset(name: str, base_url: str, description: str):
        """添加自定义预设"""
        try:
            preset = ProviderManager(tool).add_preset(name, normalize_url(base_url), description)
            safe_echo(f"✓ Preset '{preset.name}' added")
        except CcmanError as e:
            fail(e)

    @group.command(name="remove-preset")
    @click.argument('name')
    def remove_preset(name: str):
        """删除自定义预设"""
        try:
            ProviderManager(tool).remove_preset(name)
            safe_echo(f"✓ Preset '{name}' removed")
        except CcmanError as e:
            fail(e)

    return group


for _tool in TOOL_ORDER:
    cli.add_command(make_tool_group(_tool))


# ---- MCP ----

@cli.group()
def mcp():
    """管理 MCP 服务器"""


@mcp.command(name="add")
@click.argument('name')
@click.argument('command')
@click.argument('args', nargs=-1)
@click.option('--env', 'env_pairs', multiple=True, help='环境变量 KEY=VALUE，可多次指定')
@click.option('--app', 'apps', multiple=True, type=click.Choice(MCP_APPS), help='启用的应用，默认 claude')
@click.option('--description', help='描述')
def mcp_add(name: str, command: str, args: tuple, env_pairs: tuple, apps: tuple, description: Optional[str]):
    """添加 MCP 服务器"""
    try:
        server = McpManager().add(name, command, list(args), parse_env_pairs(list(env_pairs)),
                                  description, list(apps) or None)
        safe_echo(f"✓ MCP server '{server.name}' added ({', '.join(server.enabled_apps)})")
    except CcmanError as e:
        fail(e)


@mcp.command(name="list")
def mcp_list():
    """列出 MCP 服务器"""
    try:
        servers = McpManager().list()
        if not servers:
            click.echo("No MCP servers found. Use 'ccman mcp add' to create one.")
            return
        rows = [[s.name, " ".join([s.command, *s.args]), ", ".join(s.enabled_apps)] for s in servers]
        click.echo(format_table(["Name", "Command", "Apps"], rows))
    except CcmanError as e:
        fail(e)


@mcp.command(name="remove")
@click.argument('name')
def mcp_remove(name: str):
    """删除 MCP 服务器"""
    try:
        server = McpManager().remove(name)
        safe_echo(f"✓ MCP server '{server.name}' removed")
    except CcmanError as e:
        fail(e)


@mcp.command(name="enable")
@click.argument('name')
@click.argument('app', type=click.Choice(MCP_APPS))
def mcp_enable(name: str, app: str):
    """在某个应用中启用 MCP 服务器"""
    try:
        McpManager().set_app_enabled(name, app, True)
        safe_echo(f"✓ '{name}' enabled for {app}")
    except CcmanError as e:
        fail(e)


@mcp.command(name="disable")
@click.argument('name')
@click.argument('app', type=click.Choice(MCP_APPS))
def mcp_disable(name: str, app: str):
    """在某个应用中停用 MCP 服务器"""
    try:
        McpManager().set_app_enabled(name, app, False)
        safe_echo(f"✓ '{name}' disabled for {app}")
    except CcmanError as e:
        fail(e)


# ---- sync ----

def _load_sync_config() -> SyncConfig:
    sync_config = ConfigManager().get_sync_config()
    if sync_config is None:
        click.echo("Error: Sync is not configured. Run 'ccman sync config' first.", err=True)
        sys.exit(1)
    return sync_config


def _sync_password(sync_config: SyncConfig, password: Optional[str]) -> str:
    if password:
        return password
    if sync_config.sync_password:
        return sync_config.sync_password
    return click.prompt("Sync password", hide_input=True)


def _run_sync(action):
    """创建编排器，执行异步操作并关闭连接"""
    sync_config = _load_sync_config()

    async def runner():
        orchestrator = SyncOrchestrator.from_config(sync_config)
        try:
            return await action(orchestrator, sync_config)
        finally:
            await orchestrator.close()

    return asyncio.run(runner())


@cli.group()
def sync():
    """WebDAV 同步"""


@sync.command(name="config")
@click.option('--url', prompt='WebDAV URL', help='WebDAV 地址')
@click.option('--username', prompt=True, help='用户名')
@click.option('--password', prompt=True, hide_input=True, help='密码')
@click.option('--auth-type', type=click.Choice(["password", "digest"]), default="password", help='认证方式')
@click.option('--remote-dir', default="/", help='远程目录')
@click.option('--sync-password', help='同步密码（加密 API Key）')
@click.option('--remember', is_flag=True, help='在本机记住同步密码')
def sync_config_cmd(url: str, username: str, password: str, auth_type: str, remote_dir: str,
                    sync_password: Optional[str], remember: bool):
    """配置 WebDAV 同步"""
    try:
        config = SyncConfig(
            webdav_url=url,
            username=username,
            password=password,
            auth_type=auth_type,
            remote_dir=remote_dir,
            sync_password=sync_password,
            remember_sync_password=remember,
        )
        ConfigManager().save_sync_config(config)
        safe_echo("✓ Sync config saved")
    except CcmanError as e:
        fail(e)


@sync.command(name="test")
def sync_test():
    """测试 WebDAV 连接"""
    try:
        _run_sync(lambda orchestrator, _: orchestrator.test_connection())
        safe_echo("✓ Connection OK")
    except CcmanError as e:
        fail(e)


@sync.command(name="status")
def sync_status():
    """查看远程数据状态"""
    try:
        info = _run_sync(lambda orchestrator, _: orchestrator.remote_info())
        sync_config = _load_sync_config()
        click.echo(f"Remote: {sync_config.webdav_url} ({sync_config.remote_dir})")
        click.echo(f"Last sync: {format_timestamp(sync_config.last_sync)}")
        for tool, present in info.items():
            click.echo(f"  {tool:<10} {'present' if present else 'missing'}")
    except CcmanError as e:
        fail(e)


@sync.command(name="upload")
@click.option('--password', help='同步密码')
@click.option('--no-secrets', is_flag=True, help='旧版同步：不上传 API Key')
def sync_upload(password: Optional[str], no_secrets: bool):
    """上传本地配置到云端"""
    try:
        if no_secrets:
            result = _run_sync(lambda orchestrator, _: orchestrator.push_metadata())
        else:
            result = _run_sync(lambda orchestrator, cfg: orchestrator.upload(_sync_password(cfg, password)))
        safe_echo(f"✓ Uploaded: {', '.join(result.tools)}")
    except CcmanError as e:
        fail(e)


@sync.command(name="download")
@click.option('--password', help='同步密码')
@click.option('--no-secrets', is_flag=True, help='旧版同步：保留本地 API Key')
@click.confirmation_option(prompt='This overwrites local providers (a backup is made). Continue?')
def sync_download(password: Optional[str], no_secrets: bool):
    """从云端下载并覆盖本地配置"""
    try:
        if no_secrets:
            result = _run_sync(lambda orchestrator, _: orchestrator.pull_metadata())
        else:
            result = _run_sync(lambda orchestrator, cfg: orchestrator.download(_sync_password(cfg, password)))
        safe_echo(f"✓ Downloaded: {', '.join(result.tools)}")
        for backup in result.backups:
            safe_echo(f"  Backup: {backup}")
    except DecryptionFailed as e:
        fail(f"{e} (check the sync password)")
    except CcmanError as e:
        fail(e)


@sync.command(name="merge")
@click.option('--password', help='同步密码')
def sync_merge(password: Optional[str]):
    """合并本地与云端配置"""
    try:
        result = _run_sync(lambda orchestrator, cfg: orchestrator.merge_and_push(_sync_password(cfg, password)))
        if not result.has_changes:
            click.echo("Already in sync, nothing to merge")
            return
        safe_echo(f"✓ Merged: {', '.join(result.tools)}")
        for backup in result.backups:
            safe_echo(f"  Backup: {backup}")
    except DecryptionFailed as e:
        fail(f"{e} (check the sync password)")
    except CcmanError as e:
        fail(e)


# ---- clean ----

@cli.group()
def clean():
    """清理 ~/.claude.json"""


@clean.command(name="analyze")
def clean_analyze():
    """分析 ~/.claude.json 占用"""
    try:
        result = analyze_claude_json()
        click.echo(f"File size: {human_readable_size(result.file_size)}")
        click.echo(f"Projects: {len(result.projects)}, history entries: {result.total_history}")
        click.echo(f"Changelog cache: {human_readable_size(result.cache_size)}")
        for project in result.projects[:10]:
            click.echo(f"  {project.count:>5}  {project.path}")
        click.echo("Estimated savings:")
        for preset, saved in result.estimated_savings.items():
            click.echo(f"  {preset:<13} {human_readable_size(saved)}")
    except CcmanError as e:
        fail(e)


@clean.command(name="run")
@click.option('--preset', type=click.Choice(list(CLEAN_PRESETS)), default="conservative", help='清理预设')
@click.option('--keep', type=int, help='每个项目保留的历史条数（覆盖预设）')
@click.option('--project', help='只清空指定项目的历史')
def clean_run(preset: str, keep: Optional[int], project: Optional[str]):
    """清理历史、缓存和统计"""
    try:
        if project:
            removed = clear_project_history(project)
            safe_echo(f"✓ Removed {removed} history entries from {project}")
            return
        base = CLEAN_PRESETS[preset]
        options = CleanOptions(keep_recent=keep if keep is not None else base.keep_recent,
                               clean_cache=base.clean_cache, clean_stats=base.clean_stats)
        result = clean_claude_json(options)
        safe_echo(f"✓ Cleaned: {human_readable_size(result.size_before)} → {human_readable_size(result.size_after)}")
        if result.backup_path:
            safe_echo(f"  Backup: {result.backup_path}")
    except CcmanError as e:
        fail(e)


# ---- export / import ----

@cli.command()
@click.argument('target_dir', type=click.Path(file_okay=False))
def export(target_dir: str):
    """导出服务商配置（包含 API Key，请妥善保管）"""
    try:
        exported = export_stores(Path(target_dir))
        safe_echo(f"✓ Exported {', '.join(exported)} to {target_dir}")
    except CcmanError as e:
        fail(e)


@cli.command(name="import")
@click.argument('source_dir', type=click.Path(exists=True, file_okay=False))
@click.option('--dry-run', is_flag=True, help='只校验，不写入')
def import_cmd(source_dir: str, dry_run: bool):
    """从目录导入服务商配置"""
    try:
        if dry_run:
            found = [f"{tool}.json" for tool in TOOL_ORDER if (Path(source_dir) / f"{tool}.json").exists()]
            click.echo(f"Would import: {', '.join(found) or 'nothing'}")
            return
        result = import_stores(Path(source_dir))
        safe_echo(f"✓ Imported {', '.join(result['imported'])}")
        for backup in result["backups"]:
            safe_echo(f"  Backup: {backup}")
    except CcmanError as e:
        fail(e)


# ---- migrate ----

@cli.command()
@click.option('--rollback', is_flag=True, help='恢复 v1 的 config.json 并删除迁移生成的文件')
def migrate(rollback: bool):
    """迁移旧版 ~/.ccman 数据"""
    if rollback:
        result = rollback_migration()
        if not result.success:
            fail(result.message)
        safe_echo(f"✓ {result.message}")
        return

    outcome = run_all_migrations()
    for message in outcome["messages"]:
        click.echo(message)
    if not outcome["success"]:
        sys.exit(1)


# ---- gmn ----

@cli.command()
@click.option('--api-key', prompt='GMN API Key', hide_input=True, help='GMN API Key')
@click.option('--platform', 'platform_arg', help='平台，逗号分隔或 all（默认 codex,opencode）')
@click.option('--domain', type=click.Choice(list(GMN_OPENAI_BASE_URLS)), default="cn",
              help='Codex/OpenCode 使用的 OpenAI Base URL')
def gmn(api_key: str, platform_arg: Optional[str], domain: str):
    """一键配置 GMN 服务商"""
    try:
        platforms = parse_platforms(platform_arg)
        click.echo(f"Platforms: {', '.join(platforms)}")
        result = setup_gmn(api_key, platforms, domain)
    except CcmanError as e:
        fail(e)

    for platform in result.configured:
        safe_echo(f"✓ {TOOLS[platform].display_name}")
    for platform, error in result.errors.items():
        safe_echo(f"✗ {TOOLS[platform].display_name}: {error}", err=True)
    if not result.success:
        sys.exit(1)
    click.echo("Restart the configured tools to pick up the new provider.")


def main():
    """主入口点"""
    try:
        cli()
    except KeyboardInterrupt:
        click.echo("\nOperation cancelled by user", err=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
