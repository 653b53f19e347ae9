import asyncio

from rich import print

from pickup.config import get_settings
from pickup.errors import PickupError
from pickup.models import ProductState
from pickup.storefront import Storefront
from pickup_sdk.client import PickupClient


async def simulate_tap(shop, label, product_id):
    try:
        outcome = await shop.reserve(product_id)
        if outcome is None:
            print(f"⏸️  {label}: ignored, a reservation for #{product_id} is already in flight")
        else:
            r = outcome.reservation
            print(f"✅ {label}: reserved {r.quantity} (Reservation ID: {r.id}, Amount: {r.amount})")
    except PickupError as e:
        print(f"❌ {label}: {e.message}")


async def main():
    settings = get_settings()
    async with PickupClient.from_settings(settings) as client:
        shop = Storefront(client, settings)
        await shop.start()

        horizon = shop.horizon()
        date = shop.active_date(horizon[0])
        open_views = [v for v in shop.listing(date) if v.state is ProductState.OPEN]
        if not open_views:
            print(f"No open products for {date}")
            await shop.close()
            return

        product = open_views[0].product
        shop.increment(product.id)
        print(f"\n🧺 Reserving 1 x {product.name} (stock {product.stock}) for {date}")

        # two taps on the same button before the first response arrives
        print("\n⚡ Simulating a double tap...")
        await asyncio.gather(
            simulate_tap(shop, "tap 1", product.id),
            simulate_tap(shop, "tap 2", product.id),
        )

        print("\n📦 Local stock now:", shop.store.product(product.id).stock)
        await shop.refresh_products()
        print("📦 Server stock after refresh:", shop.store.product(product.id).stock)
        await shop.close()


if __name__ == "__main__":
    asyncio.run(main())
