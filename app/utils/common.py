from typing import Optional
from urllib.parse import urlparse

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import Business, CreditBalance


def normalize_domain(website: Optional[str]) -> Optional[str]:
	# "https://www.Example.com/about" -> "example.com"
	if not website:
		return None
	value = website.strip().lower()
	if not value:
		return None
	if "://" not in value:
		value = f"//{value}"
	host = urlparse(value).hostname or ""
	if host.startswith("www."):
		host = host[4:]
	return host or None


def is_domain_match(domain: Optional[str], target_domain: Optional[str]) -> bool:
	"""Домен збігається з цільовим або є його піддоменом."""
	domain = normalize_domain(domain)
	target = normalize_domain(target_domain)
	if not domain or not target:
		return False
	return domain == target or domain.endswith(f".{target}")


async def get_target_domain(session: AsyncSession, account_id: str) -> Optional[str]:
	"""
	Цільовий домен акаунта з профілю бізнесу.
	None - якщо бізнес або website не задано.
	"""
	result = await session.execute(
		select(Business.website).where(Business.account_id == account_id)
	)
	website: str | None = result.scalar_one_or_none()
	return normalize_domain(website)


async def balance_existing_check(session: AsyncSession, account_id: str):
	"""
	Перевіряє, чи існує баланс акаунта.
	Якщо ні, генерує виняток.
	"""
	result = await session.execute(
		select(CreditBalance.id).where(CreditBalance.account_id == account_id)
	)
	if result.scalar_one_or_none() is None:
		raise HTTPException(
			status_code=status.HTTP_404_NOT_FOUND,
			detail=f"Balance for account '{account_id}' not found.",
		)
