import unittest
from unittest.mock import patch

from sqlalchemy import Delete, select

from catalog_backend.catalog import (
    delete_category_cascade,
    ensure_defaults,
    find_subcategory,
    get_uncategorized,
)
from catalog_backend.db import (
    UNCATEGORIZED,
    Active,
    Category,
    Database,
    Product,
    ProductCategory,
    ProductSubCategory,
    SubCategory,
    UserLimit,
    transaction,
)


class DatabaseTests(unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the Postgres schema.
    """

    def setUp(self):
        self.db = Database("sqlite+pysqlite:///:memory:")
        self.session = self.db.Session()

    def tearDown(self):
        self.session.close()

    def test_ensure_defaults_is_idempotent(self):
        ensure_defaults(self.session, 6)
        ensure_defaults(self.session, 9)
        self.assertEqual(self.session.scalars(select(UserLimit)).one().max_role, 6)
        self.assertTrue(self.session.scalars(select(Active)).one().status)
        self.assertEqual(get_uncategorized(self.session).name, UNCATEGORIZED)

    def test_transaction_rolls_back_everything(self):
        with self.assertRaises(RuntimeError):
            with transaction(self.session):
                self.session.add(Category(name="tools"))
                self.session.flush()
                raise RuntimeError("abort")
        self.assertEqual(self.session.scalars(select(Category)).all(), [])

    def test_category_cascade_rolls_back_when_a_step_fails(self):
        ensure_defaults(self.session, 6)
        with transaction(self.session):
            tools = Category(name="tools")
            product = Product(title="Hammer", slug="hammer")
            self.session.add_all([tools, product])
            self.session.flush()
            hammers = SubCategory(name="hammers", category_id=tools.id)
            self.session.add(hammers)
            self.session.flush()
            self.session.add_all(
                [
                    ProductCategory(product_id=product.id, category_id=tools.id),
                    ProductSubCategory(product_id=product.id, subcategory_id=hammers.id),
                ]
            )
        tools_id, hammers_id, product_id = tools.id, hammers.id, product.id

        execute = self.session.execute

        def fail_on_category_delete(statement, *args, **kwargs):
            if isinstance(statement, Delete) and statement.table is Category.__table__:
                raise RuntimeError("connection lost")
            return execute(statement, *args, **kwargs)

        with patch.object(self.session, "execute", side_effect=fail_on_category_delete):
            with self.assertRaises(RuntimeError):
                delete_category_cascade(self.session, tools)

        self.session.expire_all()
        self.assertIsNotNone(self.session.get(Category, tools_id))
        self.assertIsNotNone(self.session.get(SubCategory, hammers_id))
        links = self.session.scalars(
            select(ProductCategory.category_id).where(ProductCategory.product_id == product_id)
        ).all()
        self.assertEqual(links, [tools_id])
        sub_links = self.session.scalars(
            select(ProductSubCategory.subcategory_id).where(
                ProductSubCategory.product_id == product_id
            )
        ).all()
        self.assertEqual(sub_links, [hammers_id])

    def test_find_subcategory_variants(self):
        with transaction(self.session):
            category = Category(name="tools")
            self.session.add(category)
            self.session.flush()
            self.session.add_all(
                [
                    SubCategory(name="nuts - bolts", category_id=category.id),
                    SubCategory(name="sanders & grinders", category_id=category.id),
                ]
            )

        self.assertEqual(find_subcategory(self.session, "nuts bolts").name, "nuts - bolts")
        self.assertEqual(
            find_subcategory(self.session, "sanders and grinders").name,
            "sanders & grinders",
        )
        self.assertEqual(find_subcategory(self.session, "grinders").name, "sanders & grinders")
        self.assertIsNone(find_subcategory(self.session, "lathes"))


if __name__ == "__main__":
    unittest.main()
