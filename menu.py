"""Static menu catalog."""

from typing import List, Optional

from schemas import MenuItem

CATEGORIES = ["All", "Tea", "Coffee", "Snacks", "Burger", "Drinks"]

MENU_ITEMS: List[MenuItem] = [
    # Tea
    MenuItem(id="1", name="Chiya", name_localized="चिया", price=20, category="Tea"),
    MenuItem(id="2", name="Black Tea", name_localized="कालो चिया", price=20, category="Tea"),
    MenuItem(id="3", name="Milk Tea", name_localized="दुध चिया", price=25, category="Tea"),
    MenuItem(id="4", name="Masala Tea", name_localized="मसला चिया", price=30, category="Tea"),
    MenuItem(id="5", name="Green Tea", name_localized="हरियो चिया", price=30, category="Tea"),
    MenuItem(id="6", name="Lemon Tea", name_localized="कागती चिया", price=30, category="Tea"),
    MenuItem(id="7", name="Ginger Tea", name_localized="अदुवा चिया", price=25, category="Tea"),
    # Coffee
    MenuItem(id="8", name="Black Coffee", name_localized="कालो कफी", price=40, category="Coffee"),
    MenuItem(id="9", name="Milk Coffee", name_localized="दुध कफी", price=50, category="Coffee"),
    MenuItem(id="10", name="Cappuccino", name_localized="क्यापुचिनो", price=80, category="Coffee"),
    # Snacks
    MenuItem(id="11", name="Samosa", name_localized="समोसा", price=25, category="Snacks"),
    MenuItem(id="12", name="Pakora", name_localized="पकौडा", price=40, category="Snacks"),
    MenuItem(id="13", name="Momo (Veg)", name_localized="मोमो (भेज)", price=100, category="Snacks"),
    MenuItem(id="14", name="Momo (Buff)", name_localized="मोमो (बफ)", price=120, category="Snacks"),
    MenuItem(id="15", name="Chowmein", name_localized="चाउमिन", price=80, category="Snacks"),
    MenuItem(id="16", name="Fried Rice", name_localized="फ्राइड राइस", price=100, category="Snacks"),
    # Burger
    MenuItem(id="17", name="Veg Burger", name_localized="भेज बर्गर", price=80, category="Burger"),
    MenuItem(id="18", name="Chicken Burger", name_localized="चिकन बर्गर", price=120, category="Burger"),
    MenuItem(id="19", name="Cheese Burger", name_localized="चिज बर्गर", price=100, category="Burger"),
    # Cold drinks
    MenuItem(id="20", name="Lassi", name_localized="लस्सी", price=50, category="Drinks"),
    MenuItem(id="21", name="Lemon Soda", name_localized="कागती सोडा", price=40, category="Drinks"),
    MenuItem(id="22", name="Cold Coffee", name_localized="चिसो कफी", price=70, category="Drinks"),
]

_BY_ID = {item.id: item for item in MENU_ITEMS}


def list_menu(category: str = "All") -> List[MenuItem]:
    if category == "All":
        return list(MENU_ITEMS)
    return [item for item in MENU_ITEMS if item.category == category]


def get_menu_item(item_id: str) -> Optional[MenuItem]:
    return _BY_ID.get(item_id)
