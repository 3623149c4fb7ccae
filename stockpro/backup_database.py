"""Database backup job.

Copies the SQLite file or runs ``pg_dump`` into the backup directory, then
prunes old backups so only the most recent ``--keep`` files remain. Exits
with status 1 on failure so schedulers can alert on it.
"""

from __future__ import annotations

import argparse
import logging
import os
import shutil
import subprocess
import sys
from datetime import datetime
from pathlib import Path

from sqlalchemy.engine import make_url

from stockpro.config import settings
from stockpro.logging_config import configure_logging

logger = logging.getLogger(__name__)

BACKUP_PREFIX = 'database_backup_'


class BackupError(RuntimeError):
    pass


def _timestamp() -> str:
    return datetime.now().strftime('%Y-%m-%d_%H%M%S')


def backup_sqlite(database: str, backup_dir: Path) -> Path:
    source = Path(database)
    if not source.is_file():
        raise BackupError(f"Le fichier de base de données n'existe pas: {source}")
    target = backup_dir / f'{BACKUP_PREFIX}{_timestamp()}.sqlite'
    shutil.copy2(source, target)
    return target


def backup_postgres(database_url: str, backup_dir: Path) -> Path:
    url = make_url(database_url)
    target = backup_dir / f'{BACKUP_PREFIX}{_timestamp()}.sql'
    command = [
        'pg_dump',
        '--host', url.host or 'localhost',
        '--port', str(url.port or 5432),
        '--username', url.username or 'postgres',
        '--file', str(target),
        url.database or '',
    ]
    env = None
    if url.password:
        env = {**os.environ, 'PGPASSWORD': url.password}
    try:
        result = subprocess.run(command, capture_output=True, text=True, env=env, check=False)
    except FileNotFoundError as exc:
        raise BackupError('pg_dump est introuvable') from exc
    if result.returncode != 0 or not target.exists():
        raise BackupError(f'Erreur lors de la création du dump PostgreSQL: {result.stderr.strip()}')
    return target


def clean_old_backups(backup_dir: Path, keep: int) -> list[Path]:
    backups = sorted(
        (path for path in backup_dir.glob(f'{BACKUP_PREFIX}*') if path.is_file()),
        key=lambda path: path.stat().st_mtime,
        reverse=True,
    )
    removed = backups[keep:]
    for path in removed:
        path.unlink()
        logger.info('Removed old backup %s', path.name)
    return removed


def run_backup(database_url: str, backup_dir: Path, keep: int) -> Path:
    backup_dir.mkdir(parents=True, exist_ok=True)
    url = make_url(database_url)
    if url.get_backend_name() == 'sqlite':
        target = backup_sqlite(url.database or '', backup_dir)
    elif url.get_backend_name() == 'postgresql':
        target = backup_postgres(database_url, backup_dir)
    else:
        raise BackupError(f"Le driver de base de données '{url.get_backend_name()}' n'est pas supporté pour le backup.")
    clean_old_backups(backup_dir, keep)
    return target


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description='Create a backup of the StockPro database')
    parser.add_argument('--keep', type=int, default=settings.backup_keep, help='Number of backups to keep')
    parser.add_argument('--dir', default=settings.backup_dir, help='Backup directory')
    args = parser.parse_args(argv)

    configure_logging(settings.log_level)
    try:
        target = run_backup(settings.database_url_normalized, Path(args.dir), max(args.keep, 1))
    except (BackupError, OSError) as exc:
        logger.error('Backup failed: %s', exc)
        return 1

    logger.info('Backup created: %s', target.name)
    return 0


if __name__ == '__main__':
    sys.exit(main())
