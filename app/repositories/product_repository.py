"""
Product Repository - Data Access Layer for Products

Handles all database queries for products and returns Product domain models.

Author: TM3
Date: 2025-10-17
"""
from typing import Any, Dict, List, Optional, Tuple

from app.core.database import get_db_connection_dict
from app.domain.product import LOW_STOCK_THRESHOLD, Product

# Columns admins may sort by
ADMIN_SORT_COLUMNS = ('name', 'price', 'stock', 'category', 'created_at', 'updated_at')

PRODUCT_COLUMNS = """
    p.id, p.name, p.slug, p.description, p.category, p.price, p.sale_price,
    p.stock, p.rating, p.is_on_sale, p.is_new, p.is_bestseller,
    p.created_at, p.updated_at
"""

RELATIONS = """
    COALESCE(
        (SELECT json_agg(row_to_json(pi) ORDER BY pi.is_primary DESC, pi.id)
         FROM product_images pi
         WHERE pi.product_id = p.id),
        '[]'::json
    ) AS images,
    (SELECT row_to_json(s)
     FROM product_specs s
     WHERE s.product_id = p.id
     LIMIT 1) AS specs,
    COALESCE(
        (SELECT json_agg(row_to_json(psc) ORDER BY psc.id)
         FROM product_spec_colors psc
         WHERE psc.product_id = p.id),
        '[]'::json
    ) AS colors
"""


class ProductRepository:
    """
    Repository for Product data access

    All SQL queries for products are centralized here.
    Returns Product domain models, not raw dictionaries.
    """

    @staticmethod
    def _map_row_to_product(row: dict) -> Product:
        """Map a products row (optionally with images/specs/colors) to Product"""
        return Product(
            id=row['id'],
            name=row['name'],
            slug=row['slug'],
            description=row.get('description'),
            category=row['category'],
            price=row['price'],
            sale_price=row.get('sale_price'),
            stock=row.get('stock') or 0,
            rating=row.get('rating'),
            is_on_sale=bool(row.get('is_on_sale')),
            is_new=bool(row.get('is_new')),
            is_bestseller=bool(row.get('is_bestseller')),
            created_at=row.get('created_at'),
            updated_at=row.get('updated_at'),
            images=row.get('images') or [],
            specs=row.get('specs'),
            colors=row.get('colors') or [],
        )

    # ------------------------------------------------------------------
    # Storefront reads
    # ------------------------------------------------------------------

    def find_all(
        self,
        category: Optional[str] = None,
        search: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> Tuple[List[Product], int]:
        """
        Catalog listing with images, specs and colors

        Returns:
            Tuple of (list of products, total count)
        """
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            conditions = []
            params: List[Any] = []

            if category:
                conditions.append("p.category = %s")
                params.append(category)

            if search:
                conditions.append("(p.name ILIKE %s OR p.description ILIKE %s)")
                search_param = f"%{search}%"
                params.extend([search_param, search_param])

            where_clause = " AND ".join(conditions) if conditions else "1=1"

            cursor.execute(f"SELECT COUNT(*) AS total FROM products p WHERE {where_clause}", params)
            total = cursor.fetchone()['total']

            query = f"""
                SELECT {PRODUCT_COLUMNS}, {RELATIONS}
                FROM products p
                WHERE {where_clause}
                ORDER BY p.id
            """
            query_params = list(params)
            if limit is not None:
                query += " LIMIT %s OFFSET %s"
                query_params.extend([limit, offset])

            cursor.execute(query, query_params)
            products = [self._map_row_to_product(row) for row in cursor.fetchall()]
            return products, total

        finally:
            cursor.close()
            conn.close()

    def find_by_slug(self, slug: str) -> Optional[Product]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {PRODUCT_COLUMNS}, {RELATIONS}
                FROM products p
                WHERE p.slug = %s
            """, (slug,))

            row = cursor.fetchone()
            if not row:
                return None

            return self._map_row_to_product(row)

        finally:
            cursor.close()
            conn.close()

    def find_by_id(self, product_id: int) -> Optional[Product]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {PRODUCT_COLUMNS}, {RELATIONS}
                FROM products p
                WHERE p.id = %s
            """, (product_id,))

            row = cursor.fetchone()
            if not row:
                return None

            return self._map_row_to_product(row)

        finally:
            cursor.close()
            conn.close()

    def search(self, query: str, limit: int = 10) -> List[Product]:
        """
        In-stock products whose name, description or category matches.

        Exact name matches rank first, then partial name matches, then
        bestsellers, new arrivals and rating.
        """
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            term = query.strip()
            like = f"%{term}%"
            cursor.execute(f"""
                SELECT {PRODUCT_COLUMNS}, {RELATIONS}
                FROM products p
                WHERE (p.name ILIKE %s OR p.description ILIKE %s OR p.category ILIKE %s)
                  AND p.stock > 0
                ORDER BY
                    CASE
                        WHEN p.name ILIKE %s THEN 1
                        WHEN p.name ILIKE %s THEN 2
                        ELSE 3
                    END,
                    p.is_bestseller DESC,
                    p.is_new DESC,
                    p.rating DESC NULLS LAST,
                    p.name ASC
                LIMIT %s
            """, (like, like, like, term, like, limit))

            return [self._map_row_to_product(row) for row in cursor.fetchall()]

        finally:
            cursor.close()
            conn.close()

    def find_similar(self, category: str, exclude_slug: str, limit: int = 8) -> List[Product]:
        """Other products from the same category"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute(f"""
                SELECT {PRODUCT_COLUMNS}, {RELATIONS}
                FROM products p
                WHERE p.category = %s
                  AND p.slug != %s
                ORDER BY p.id
                LIMIT %s
            """, (category, exclude_slug, limit))

            return [self._map_row_to_product(row) for row in cursor.fetchall()]

        finally:
            cursor.close()
            conn.close()

    def get_specs(self, product_id: int) -> Optional[Tuple[str, Optional[dict]]]:
        """
        Product category and its product_specs row

        Returns:
            (category, specs row or None), or None when the product does not exist
        """
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("SELECT category FROM products WHERE id = %s", (product_id,))
            product = cursor.fetchone()
            if not product:
                return None

            cursor.execute("SELECT * FROM product_specs WHERE product_id = %s LIMIT 1", (product_id,))
            return product['category'], cursor.fetchone()

        finally:
            cursor.close()
            conn.close()

    def get_colors(self, product_id: int) -> List[dict]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT product_id, color, image_url
                FROM product_spec_colors
                WHERE product_id = %s
                ORDER BY id
            """, (product_id,))
            return cursor.fetchall()

        finally:
            cursor.close()
            conn.close()

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    def admin_list(
        self,
        page: int = 1,
        limit: int = 20,
        category: Optional[str] = None,
        search: Optional[str] = None,
        sort: str = 'created_at',
        order: str = 'desc',
        low_stock: bool = False
    ) -> Tuple[List[dict], int]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            conditions = []
            params: List[Any] = []

            if category:
                conditions.append("category = %s")
                params.append(category)

            if search:
                conditions.append("(name ILIKE %s OR slug ILIKE %s)")
                search_param = f"%{search}%"
                params.extend([search_param, search_param])

            if low_stock:
                conditions.append("stock < %s")
                params.append(LOW_STOCK_THRESHOLD)

            where_clause = " AND ".join(conditions) if conditions else "1=1"

            cursor.execute(f"SELECT COUNT(*) AS total FROM products WHERE {where_clause}", params)
            total = cursor.fetchone()['total']

            sort_column = sort if sort in ADMIN_SORT_COLUMNS else 'created_at'
            sort_order = 'ASC' if order == 'asc' else 'DESC'

            cursor.execute(f"""
                SELECT id, name, slug, category, price, sale_price, stock,
                       is_on_sale, is_new, is_bestseller, created_at, updated_at
                FROM products
                WHERE {where_clause}
                ORDER BY {sort_column} {sort_order}
                LIMIT %s OFFSET %s
            """, params + [limit, (page - 1) * limit])

            return cursor.fetchall(), total

        finally:
            cursor.close()
            conn.close()

    def slug_exists(self, slug: str, exclude_id: Optional[int] = None) -> bool:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            if exclude_id is not None:
                cursor.execute("SELECT id FROM products WHERE slug = %s AND id != %s", (slug, exclude_id))
            else:
                cursor.execute("SELECT id FROM products WHERE slug = %s", (slug,))
            return cursor.fetchone() is not None

        finally:
            cursor.close()
            conn.close()

    def create(self, data: Dict[str, Any]) -> dict:
        """Insert a product with its images and colors in one transaction"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                INSERT INTO products
                    (name, slug, description, category, price, sale_price, stock,
                     is_on_sale, is_new, is_bestseller)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING id, name, slug, category, price, stock
            """, (
                data['name'], data['slug'], data.get('description', ''), data['category'],
                data['price'], data.get('sale_price'), data.get('stock', 0),
                data.get('is_on_sale', False), data.get('is_new', False), data.get('is_bestseller', False)
            ))
            product = cursor.fetchone()

            self._insert_media(cursor, product['id'], data)

            conn.commit()
            return product

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()

    @staticmethod
    def _insert_media(cursor, product_id: int, data: Dict[str, Any]) -> None:
        for image in data.get('images') or []:
            cursor.execute("""
                INSERT INTO product_images (product_id, image_url, alt, is_primary, color)
                VALUES (%s, %s, %s, %s, %s)
            """, (product_id, image['image_url'], image.get('alt', ''),
                  image.get('is_primary', False), image.get('color')))

        for color in data.get('colors') or []:
            cursor.execute("""
                INSERT INTO product_spec_colors (product_id, color, image_url)
                VALUES (%s, %s, %s)
            """, (product_id, color['color'], color['image_url']))

    def update(self, product_id: int, data: Dict[str, Any]) -> Optional[dict]:
        """Update a product; images and colors are replaced when provided"""
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                UPDATE products
                SET name = %s, slug = %s, description = %s, category = %s,
                    price = %s, sale_price = %s, stock = %s,
                    is_on_sale = %s, is_new = %s, is_bestseller = %s,
                    updated_at = NOW()
                WHERE id = %s
                RETURNING id, name, slug, category, price, stock
            """, (
                data['name'], data['slug'], data.get('description', ''), data['category'],
                data['price'], data.get('sale_price'), data.get('stock', 0),
                data.get('is_on_sale', False), data.get('is_new', False), data.get('is_bestseller', False),
                product_id
            ))
            product = cursor.fetchone()
            if not product:
                conn.rollback()
                return None

            if data.get('images'):
                cursor.execute("DELETE FROM product_images WHERE product_id = %s", (product_id,))
            if data.get('colors'):
                cursor.execute("DELETE FROM product_spec_colors WHERE product_id = %s", (product_id,))
            self._insert_media(cursor, product_id, data)

            conn.commit()
            return product

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()

    def get_basic(self, product_id: int) -> Optional[dict]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                SELECT id, name, slug, price, stock
                FROM products
                WHERE id = %s
            """, (product_id,))
            return cursor.fetchone()

        finally:
            cursor.close()
            conn.close()

    def delete(self, product_id: int) -> Optional[dict]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("DELETE FROM product_images WHERE product_id = %s", (product_id,))
            cursor.execute("DELETE FROM product_spec_colors WHERE product_id = %s", (product_id,))
            cursor.execute("DELETE FROM products WHERE id = %s RETURNING id, name, slug", (product_id,))
            deleted = cursor.fetchone()
            conn.commit()
            return deleted

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()

    def bulk_delete(self, product_ids: List[int]) -> List[dict]:
        conn = get_db_connection_dict()
        cursor = conn.cursor()

        try:
            cursor.execute("DELETE FROM product_images WHERE product_id = ANY(%s)", (product_ids,))
            cursor.execute("DELETE FROM product_spec_colors WHERE product_id = ANY(%s)", (product_ids,))
            cursor.execute(
                "DELETE FROM products WHERE id = ANY(%s) RETURNING id, name",
                (product_ids,)
            )
            deleted = cursor.fetchall()
            conn.commit()
            return deleted

        except Exception:
            conn.rollback()
            raise

        finally:
            cursor.close()
            conn.close()
