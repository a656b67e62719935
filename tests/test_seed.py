"""Tests for the sales-rep seed command."""

import asyncio

from database.seed import INITIAL_SALES_REPS, cli, seed_sales_reps


def test_seed_is_idempotent(store_at):
    async def scenario():
        async with store_at() as store:
            first = await seed_sales_reps(store)
            second = await seed_sales_reps(store)
            return first, second, await store.sales_reps.list_active()

    first, second, reps = asyncio.run(scenario())
    assert first == len(INITIAL_SALES_REPS)
    assert second == 0
    assert sorted(rep.email for rep in reps) == sorted(rep["email"] for rep in INITIAL_SALES_REPS)
    assert all(rep.max_open_leads == 80 for rep in reps)


def test_seed_reactivates_rep(store_at):
    async def scenario():
        async with store_at() as store:
            await seed_sales_reps(store)
            rep = (await store.sales_reps.list_active())[0]
            await store.sales_reps.upsert_by_email(rep.email, is_active=False)
            await seed_sales_reps(store)
            return await store.sales_reps.list_active()

    assert len(asyncio.run(scenario())) == len(INITIAL_SALES_REPS)


def test_cli_creates_tables_and_seeds(tmp_path):
    url = f"sqlite:///{tmp_path / 'seed.db'}"
    assert cli(["--database-url", url, "--create-tables"]) == 0
    assert (tmp_path / "seed.db").exists()
