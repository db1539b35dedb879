from __future__ import annotations

from decimal import Decimal

from sqlalchemy import select

from backend.app.db.session import SessionLocal
from backend.app.db.models.models_v1 import Client, Product, SubProduct
from backend.services.row_store import RowStore
from backend.services.stock_positions import associate_product


def run_seed():
    db = SessionLocal()
    try:
        # 1) Catalogue : un produit simple, un produit décliné
        savon = db.scalar(select(Product).where(Product.name == "Savon monoï"))
        if not savon:
            savon = Product(name="Savon monoï", price=Decimal("4.50"), recommended_sale_price=Decimal("8.90"))
            db.add(savon)
            db.commit()

        bougie = db.scalar(select(Product).where(Product.name == "Bougie parfumée"))
        if not bougie:
            bougie = Product(name="Bougie parfumée", price=Decimal("9.00"), recommended_sale_price=Decimal("18.00"))
            db.add(bougie)
            db.flush()
            for parfum in ("Tiaré", "Vanille", "Coco"):
                db.add(SubProduct(product_id=bougie.id, name=parfum))
            db.commit()

        # 2) Client dépositaire avec sa position de départ
        client = db.scalar(select(Client).where(Client.name == "Boutique du port"))
        if not client:
            client = Client(name="Boutique du port", email="contact@boutique-du-port.example")
            db.add(client)
            db.commit()

            store = RowStore(db)
            associate_product(store, client_id=client.id, product_id=savon.id, initial_stock=20)
            subs = db.execute(select(SubProduct).where(SubProduct.product_id == bougie.id)).scalars().all()
            associate_product(
                store,
                client_id=client.id,
                product_id=bougie.id,
                sub_product_stocks={sp.id: 5 for sp in subs},
            )

        print(f"SEED OK: client={client.name}, products={savon.name}, {bougie.name}")
    finally:
        db.close()


if __name__ == "__main__":
    run_seed()
