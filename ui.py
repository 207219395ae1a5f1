# ui.py
import datetime
import logging
import os
import tkinter as tk
from tkinter import filedialog, messagebox, simpledialog

import ttkbootstrap as ttk

from checkout import CheckoutSequencer
from config import get_tax_rate
from errors import CashierError
from models import Cart, to_money
from scanner import ProductScanner
from utils import (generate_pdf_receipt, generate_sales_report, generate_txt_receipt,
                   summarize_sales)

logger = logging.getLogger("cashier.ui")

BOOTSTRAP_THEMES = {
    "dark": "darkly",
    "light": "cosmo",
    "default": "cosmo"
}


class CashierUI:
    def __init__(self, db, auth, config):
        self.db = db
        self.auth = auth
        self.config = config
        self.currency = config.get("currency", "$")

        # One ledger per register session
        self.cart = Cart(tax_rate=get_tax_rate(config))
        self.scanner = ProductScanner(db, self.cart)
        self.sequencer = CheckoutSequencer(
            db, auth, revalidate_stock=bool(config.get("sales", {}).get("revalidate_stock")))

        self.root = ttk.Window(themename=BOOTSTRAP_THEMES.get(config.get("theme"), "cosmo"))
        self.root.title("POS System")
        self.root.geometry("1100x760")
        self.root.minsize(900, 600)

        self.editing_product_id = None
        self.transactions = {}

        self._build_gui()
        self._refresh_all()

    def _money(self, value) -> str:
        return f"{self.currency}{value:,.2f}"

    def _build_gui(self):
        self._create_menu_bar()
        self._create_status_bar()

        main_frame = ttk.Frame(self.root)
        main_frame.pack(expand=True, fill='both', padx=10, pady=10)

        self.notebook = ttk.Notebook(main_frame, bootstyle="primary")
        self.notebook.pack(expand=True, fill='both')

        self._build_sale_tab()
        self._build_products_tab()
        self._build_transactions_tab()

    # --- Tab 1: Sale ---
    def _build_sale_tab(self):
        frame = ttk.Frame(self.notebook)
        self.notebook.add(frame, text="Sale")

        left = ttk.Frame(frame)
        left.pack(side=tk.LEFT, fill=tk.BOTH, expand=True, padx=5, pady=5)
        right = ttk.Frame(frame)
        right.pack(side=tk.RIGHT, fill=tk.Y, padx=5, pady=5, ipadx=10)

        scan_frame = ttk.LabelFrame(left, text="Scan Product", bootstyle="primary")
        scan_frame.pack(fill=tk.X, padx=5, pady=5)

        ttk.Label(scan_frame, text="SKU:").grid(row=0, column=0, padx=5, pady=5, sticky=tk.W)
        self.sku_var = tk.StringVar()
        sku_entry = ttk.Entry(scan_frame, textvariable=self.sku_var, width=24)
        sku_entry.grid(row=0, column=1, padx=5, pady=5)
        # Keyboard-wedge scanners finish each code with Enter
        sku_entry.bind('<Return>', lambda e: self._scan())

        ttk.Label(scan_frame, text="Quantity:").grid(row=0, column=2, padx=5, pady=5, sticky=tk.W)
        self.qty_var = tk.IntVar(value=1)
        ttk.Entry(scan_frame, textvariable=self.qty_var, width=5).grid(row=0, column=3, padx=5, pady=5)
        ttk.Button(scan_frame, text="Add to Cart", command=self._scan,
                   bootstyle="success").grid(row=0, column=4, padx=5, pady=5)

        catalog_frame = ttk.LabelFrame(left, text="Catalog", bootstyle="primary")
        catalog_frame.pack(fill=tk.BOTH, expand=True, padx=5, pady=5)

        filter_frame = ttk.Frame(catalog_frame)
        filter_frame.pack(fill=tk.X, padx=5, pady=5)
        ttk.Label(filter_frame, text="Search:").pack(side=tk.LEFT, padx=5)
        self.search_var = tk.StringVar()
        self.search_var.trace_add("write", lambda *a: self._refresh_catalog())
        ttk.Entry(filter_frame, textvariable=self.search_var, width=30).pack(side=tk.LEFT, padx=5)
        ttk.Label(filter_frame, text="Category:").pack(side=tk.LEFT, padx=5)
        self.category_var = tk.StringVar(value="All")
        self.category_combo = ttk.Combobox(filter_frame, textvariable=self.category_var,
                                           state="readonly", width=18)
        self.category_combo.pack(side=tk.LEFT, padx=5)
        self.category_combo.bind("<<ComboboxSelected>>", lambda e: self._refresh_catalog())

        cols = ("Name", "SKU", "Category", "Price", "Stock")
        self.catalog_tv = ttk.Treeview(catalog_frame, columns=cols, show='headings', height=8)
        for c, width in zip(cols, (220, 120, 120, 90, 70)):
            self.catalog_tv.heading(c, text=c)
            self.catalog_tv.column(c, width=width, anchor=tk.E if c in ("Price", "Stock") else tk.W)
        self.catalog_tv.pack(fill=tk.BOTH, expand=True, padx=5, pady=5)
        self.catalog_tv.bind("<Double-1>", lambda e: self._add_selected_catalog_item())

        cart_frame = ttk.LabelFrame(left, text="Shopping Cart", bootstyle="primary")
        cart_frame.pack(fill=tk.BOTH, expand=True, padx=5, pady=5)

        cols = ("Product", "Qty", "Price", "Line Total")
        self.cart_tv = ttk.Treeview(cart_frame, columns=cols, show='headings', height=8)
        for c, width in zip(cols, (260, 60, 100, 110)):
            self.cart_tv.heading(c, text=c)
            self.cart_tv.column(c, width=width, anchor=tk.W if c == "Product" else tk.E)
        self.cart_tv.pack(fill=tk.BOTH, expand=True, padx=5, pady=5)
        self.cart_tv.bind("<Double-1>", lambda e: self._edit_cart_quantity())

        cart_btn_frame = ttk.Frame(left)
        cart_btn_frame.pack(fill=tk.X, padx=5, pady=5)
        ttk.Button(cart_btn_frame, text="Edit Quantity", command=self._edit_cart_quantity,
                   bootstyle="info").pack(side=tk.LEFT, padx=5)
        ttk.Button(cart_btn_frame, text="Remove Selected", command=self._remove_selected,
                   bootstyle="danger").pack(side=tk.LEFT, padx=5)
        ttk.Button(cart_btn_frame, text="Clear Cart", command=self._clear_cart,
                   bootstyle="warning").pack(side=tk.LEFT, padx=5)

        checkout_frame = ttk.LabelFrame(right, text="Checkout", bootstyle="primary")
        checkout_frame.pack(fill=tk.BOTH, expand=True, padx=5, pady=5)

        self.subtotal_var = tk.StringVar(value=self._money(0))
        self.tax_var = tk.StringVar(value=self._money(0))
        self.total_var = tk.StringVar(value=self._money(0))
        self.change_var = tk.StringVar(value="-")
        rate = self.cart.tax_rate * 100
        rows = [("Subtotal:", self.subtotal_var), (f"Tax ({float(rate):g}%):", self.tax_var)]
        for i, (label, var) in enumerate(rows):
            ttk.Label(checkout_frame, text=label).grid(row=i, column=0, padx=5, pady=8, sticky=tk.W)
            ttk.Label(checkout_frame, textvariable=var, font=("Arial", 12)).grid(
                row=i, column=1, padx=5, pady=8, sticky=tk.E)

        ttk.Separator(checkout_frame, orient=tk.HORIZONTAL).grid(
            row=2, column=0, columnspan=2, sticky=tk.EW, padx=5, pady=5)
        ttk.Label(checkout_frame, text="TOTAL:", font=("Arial", 12, "bold")).grid(
            row=3, column=0, padx=5, pady=10, sticky=tk.W)
        ttk.Label(checkout_frame, textvariable=self.total_var, font=("Arial", 14, "bold")).grid(
            row=3, column=1, padx=5, pady=10, sticky=tk.E)

        ttk.Label(checkout_frame, text="Customer Email:").grid(row=4, column=0, padx=5, pady=5, sticky=tk.W)
        self.email_var = tk.StringVar()
        ttk.Entry(checkout_frame, textvariable=self.email_var, width=22).grid(
            row=4, column=1, padx=5, pady=5, sticky=tk.E)

        ttk.Label(checkout_frame, text=f"Cash ({self.currency}):").grid(
            row=5, column=0, padx=5, pady=5, sticky=tk.W)
        self.cash_var = tk.StringVar()
        self.cash_var.trace_add("write", lambda *a: self._update_change())
        ttk.Entry(checkout_frame, textvariable=self.cash_var, width=12).grid(
            row=5, column=1, padx=5, pady=5, sticky=tk.E)
        ttk.Label(checkout_frame, text="Change:").grid(row=6, column=0, padx=5, pady=5, sticky=tk.W)
        ttk.Label(checkout_frame, textvariable=self.change_var, font=("Arial", 12, "bold")).grid(
            row=6, column=1, padx=5, pady=5, sticky=tk.E)

        self.receipt_type_var = tk.StringVar(value=self.config.get("receipt", {}).get("format", "txt"))
        ttk.Radiobutton(checkout_frame, text="Text Receipt", variable=self.receipt_type_var,
                        value="txt").grid(row=7, column=0, padx=5, pady=2, sticky=tk.W)
        ttk.Radiobutton(checkout_frame, text="PDF Receipt", variable=self.receipt_type_var,
                        value="pdf").grid(row=7, column=1, padx=5, pady=2, sticky=tk.W)

        ttk.Button(checkout_frame, text="CHECKOUT", command=self._checkout,
                   bootstyle="success").grid(row=8, column=0, columnspan=2, padx=5, pady=20, sticky=tk.EW)

    # --- Tab 2: Products ---
    def _build_products_tab(self):
        frame = ttk.Frame(self.notebook)
        self.notebook.add(frame, text="Products")

        left = ttk.Frame(frame)
        left.pack(side=tk.LEFT, fill=tk.BOTH, expand=True, padx=5, pady=5)
        right = ttk.Frame(frame)
        right.pack(side=tk.RIGHT, fill=tk.Y, padx=5, pady=5, ipadx=10)

        cols = ("ID", "Name", "SKU", "Category", "Price", "Stock")
        self.products_tv = ttk.Treeview(left, columns=cols, show='headings', height=18)
        for c, width in zip(cols, (50, 220, 120, 120, 90, 70)):
            self.products_tv.heading(c, text=c)
            self.products_tv.column(c, width=width, anchor=tk.W if c in ("Name", "SKU", "Category") else tk.E)
        self.products_tv.pack(fill=tk.BOTH, expand=True, padx=5, pady=5)
        self.products_tv.bind("<Double-1>", lambda e: self._edit_selected_product())

        btn_frame = ttk.Frame(left)
        btn_frame.pack(fill=tk.X, padx=5, pady=5)
        ttk.Button(btn_frame, text="New Product", command=self._clear_form).pack(side=tk.LEFT, padx=5)
        ttk.Button(btn_frame, text="Edit Selected", command=self._edit_selected_product).pack(side=tk.LEFT, padx=5)
        ttk.Button(btn_frame, text="Delete Selected", command=self._delete_selected_product,
                   bootstyle="danger").pack(side=tk.LEFT, padx=5)
        ttk.Button(btn_frame, text="Refresh", command=self._refresh_all).pack(side=tk.LEFT, padx=5)

        self.form_frame = ttk.LabelFrame(right, text="New Product", bootstyle="primary")
        self.form_frame.pack(fill=tk.BOTH, expand=True, padx=5, pady=5)

        self.form_vars = {
            "name": tk.StringVar(),
            "price": tk.StringVar(),
            "sku": tk.StringVar(),
            "category": tk.StringVar(),
            "stock_quantity": tk.StringVar(value="0"),
            "image_url": tk.StringVar(),
        }
        labels = {"name": "Name", "price": f"Price ({self.currency})", "sku": "SKU",
                  "category": "Category", "stock_quantity": "Stock", "image_url": "Image URL"}
        for i, (key, var) in enumerate(self.form_vars.items()):
            ttk.Label(self.form_frame, text=labels[key] + ":").grid(row=i, column=0, padx=5, pady=8, sticky=tk.E)
            if key == "category":
                # Editable so a new category can be typed in
                self.form_category = ttk.Combobox(self.form_frame, textvariable=var, width=20)
                self.form_category.grid(row=i, column=1, padx=5, pady=8, sticky=tk.W)
            else:
                ttk.Entry(self.form_frame, textvariable=var, width=22).grid(
                    row=i, column=1, padx=5, pady=8, sticky=tk.W)

        form_btn_frame = ttk.Frame(self.form_frame)
        form_btn_frame.grid(row=len(self.form_vars), column=0, columnspan=2, pady=15)
        ttk.Button(form_btn_frame, text="Save", command=self._save_product,
                   bootstyle="success").pack(side=tk.LEFT, padx=5)
        ttk.Button(form_btn_frame, text="Cancel", command=self._clear_form).pack(side=tk.LEFT, padx=5)

    # --- Tab 3: Transactions ---
    def _build_transactions_tab(self):
        frame = ttk.Frame(self.notebook)
        self.notebook.add(frame, text="Transactions")

        date_frame = ttk.LabelFrame(frame, text="Date Range (YYYY-MM-DD)", bootstyle="primary")
        date_frame.pack(fill=tk.X, padx=10, pady=10)
        ttk.Label(date_frame, text="From:").grid(row=0, column=0, padx=5, pady=5)
        self.date_from_var = tk.StringVar()
        ttk.Entry(date_frame, textvariable=self.date_from_var, width=12).grid(row=0, column=1, padx=5, pady=5)
        ttk.Label(date_frame, text="To:").grid(row=0, column=2, padx=5, pady=5)
        self.date_to_var = tk.StringVar()
        ttk.Entry(date_frame, textvariable=self.date_to_var, width=12).grid(row=0, column=3, padx=5, pady=5)
        ttk.Button(date_frame, text="Load", command=self._refresh_transactions).grid(
            row=0, column=4, padx=20, pady=5)

        history_frame = ttk.LabelFrame(frame, text="Transaction History", bootstyle="primary")
        history_frame.pack(fill=tk.BOTH, expand=True, padx=10, pady=5)

        # Tree column shows the expandable transaction / item label
        cols = ("Date", "Customer", "Qty", "Amount")
        self.history_tv = ttk.Treeview(history_frame, columns=cols, show='tree headings', height=12)
        self.history_tv.heading("#0", text="Transaction")
        self.history_tv.column("#0", width=240)
        for c, width in zip(cols, (160, 200, 60, 110)):
            self.history_tv.heading(c, text=c)
            self.history_tv.column(c, width=width, anchor=tk.E if c in ("Qty", "Amount") else tk.W)
        self.history_tv.pack(fill=tk.BOTH, expand=True, padx=5, pady=5)

        summary_frame = ttk.LabelFrame(frame, text="Summary", bootstyle="primary")
        summary_frame.pack(fill=tk.X, padx=10, pady=10)

        self.total_sales_var = tk.StringVar(value=self._money(0))
        self.num_trans_var = tk.StringVar(value="0")
        self.avg_sale_var = tk.StringVar(value=self._money(0))
        self.top_products_var = tk.StringVar(value="None")
        stats = [("Total Sales:", self.total_sales_var), ("Transactions:", self.num_trans_var),
                 ("Average Sale:", self.avg_sale_var)]
        for i, (label, var) in enumerate(stats):
            ttk.Label(summary_frame, text=label).grid(row=0, column=i * 2, padx=5, pady=5, sticky=tk.W)
            ttk.Label(summary_frame, textvariable=var, font=("Arial", 10, "bold")).grid(
                row=0, column=i * 2 + 1, padx=5, pady=5, sticky=tk.W)
        ttk.Label(summary_frame, text="Top Products:").grid(row=1, column=0, padx=5, pady=5, sticky=tk.NW)
        ttk.Label(summary_frame, textvariable=self.top_products_var, justify=tk.LEFT).grid(
            row=1, column=1, columnspan=5, padx=5, pady=5, sticky=tk.W)

        btn_frame = ttk.Frame(summary_frame)
        btn_frame.grid(row=2, column=0, columnspan=6, pady=10)
        ttk.Button(btn_frame, text="Print Receipt", command=self._print_selected_receipt).pack(side=tk.LEFT, padx=5)
        ttk.Button(btn_frame, text="Export Report", command=self._export_sales_report,
                   bootstyle="success").pack(side=tk.LEFT, padx=5)

    def _create_menu_bar(self):
        menubar = tk.Menu(self.root)
        self.root.config(menu=menubar)

        file_menu = tk.Menu(menubar, tearoff=0)
        menubar.add_cascade(label="File", menu=file_menu)
        file_menu.add_command(label="Export Sales Report", command=self._export_sales_report)
        file_menu.add_separator()
        file_menu.add_command(label="Exit", command=self.root.quit)

        view_menu = tk.Menu(menubar, tearoff=0)
        menubar.add_cascade(label="View", menu=view_menu)
        for name in ("default", "light", "dark"):
            view_menu.add_command(label=f"{name.title()} Theme",
                                  command=lambda n=name: self._set_theme(n))

        account_menu = tk.Menu(menubar, tearoff=0)
        menubar.add_cascade(label="Account", menu=account_menu)
        user = self.auth.get_current_user()
        account_menu.add_command(label=f"Signed in as {user.email if user else '-'}", state=tk.DISABLED)
        account_menu.add_command(label="Sign Out", command=self._sign_out)

    def _create_status_bar(self):
        status_bar = ttk.Frame(self.root, bootstyle="secondary")
        status_bar.pack(side=tk.BOTTOM, fill=tk.X)
        self.status_var = tk.StringVar(value="Ready")
        ttk.Label(status_bar, textvariable=self.status_var, padding=(5, 2),
                  bootstyle="inverse-secondary").pack(side=tk.LEFT, fill=tk.X, expand=True)
        self.datetime_var = tk.StringVar()
        ttk.Label(status_bar, textvariable=self.datetime_var, padding=(5, 2),
                  bootstyle="inverse-secondary").pack(side=tk.RIGHT)
        self._update_datetime()

    def _set_theme(self, theme_name):
        ttk.Style().theme_use(BOOTSTRAP_THEMES.get(theme_name, "cosmo"))
        logger.info("Applied theme: %s", theme_name)

    def _update_datetime(self):
        self.datetime_var.set(datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S"))
        self.root.after(1000, self._update_datetime)

    def _update_status(self, message):
        self.status_var.set(message)
        logger.info(message)

    def _show_error(self, title, error):
        messagebox.showerror(title, str(error))
        logger.error("%s: %s", title, error)

    def _sign_out(self):
        if not self.cart.is_empty and not messagebox.askyesno(
                "Sign Out", "The cart is not empty. Sign out anyway?"):
            return
        self.auth.sign_out()
        self.root.quit()

    def _refresh_all(self):
        self._refresh_catalog()
        self._refresh_products()
        self._refresh_transactions()
        self._refresh_cart_view()

    # Sale actions
    def _refresh_catalog(self):
        try:
            categories = self.db.list_categories()
            self.category_combo["values"] = ["All"] + categories
            self.form_category["values"] = categories
            category = self.category_var.get()
            products = self.db.search_products(self.search_var.get(),
                                               None if category == "All" else category)
        except CashierError as e:
            self._show_error("Failed to load products", e)
            return
        self.catalog_tv.delete(*self.catalog_tv.get_children())
        for p in products:
            self.catalog_tv.insert("", "end", iid=str(p.id), values=(
                p.name, p.sku, p.category, self._money(p.price), p.stock_quantity))

    def _read_quantity(self):
        try:
            return self.qty_var.get()
        except tk.TclError:
            return None

    def _scan(self):
        qty = self._read_quantity()
        if qty is None or qty <= 0:
            messagebox.showwarning("Input Error", "Quantity must be greater than zero")
            return
        try:
            product = self.scanner.scan_and_add(self.sku_var.get(), qty)
        except CashierError as e:
            self._show_error("Cannot add to cart", e)
            return
        self.sku_var.set("")
        self.qty_var.set(1)
        self._refresh_cart_view()
        self._update_status(f"Added {qty} x {product.name} to cart")

    def _add_selected_catalog_item(self):
        selected = self.catalog_tv.selection()
        if not selected:
            return
        try:
            product = self.db.get_product(int(selected[0]))
            if product is None:
                raise CashierError("Product no longer exists")
            self.cart.add(product, 1)
        except CashierError as e:
            self._show_error("Cannot add to cart", e)
            return
        self._refresh_cart_view()
        self._update_status(f"Added {product.name} to cart")

    def _refresh_cart_view(self):
        self.cart_tv.delete(*self.cart_tv.get_children())
        for line in self.cart.items:
            self.cart_tv.insert("", "end", iid=str(line.product.id), values=(
                line.product.name, line.quantity, self._money(line.product.price),
                self._money(line.line_total)))
        self.subtotal_var.set(self._money(self.cart.subtotal))
        self.tax_var.set(self._money(self.cart.tax))
        self.total_var.set(self._money(self.cart.total))
        self._update_change()

    def _read_cash(self):
        """Tendered cash, None when left blank."""
        raw = self.cash_var.get().strip()
        return to_money(raw) if raw else None

    def _update_change(self):
        try:
            cash = self._read_cash()
        except CashierError:
            self.change_var.set("invalid")
            return
        if cash is None or self.cart.is_empty:
            self.change_var.set("-")
        else:
            self.change_var.set(self._money(max(cash - self.cart.total, 0)))

    def _edit_cart_quantity(self):
        selected = self.cart_tv.selection()
        if not selected:
            messagebox.showinfo("Selection", "Please select an item to edit")
            return
        line = self.cart.get(int(selected[0]))
        new_qty = simpledialog.askinteger("Edit Quantity", "Enter new quantity (0 removes):",
                                          initialvalue=line.quantity, minvalue=0)
        if new_qty is None:
            return
        try:
            self.cart.set_quantity(line.product.id, new_qty)
        except CashierError as e:
            self._show_error("Stock Error", e)
            return
        self._refresh_cart_view()
        self._update_status(f"Updated {line.product.name} quantity to {new_qty}")

    def _remove_selected(self):
        selected = self.cart_tv.selection()
        if not selected:
            messagebox.showinfo("Selection", "Please select an item to remove")
            return
        for item_id in selected:
            self.cart.remove(int(item_id))
        self._refresh_cart_view()
        self._update_status("Item(s) removed from cart")

    def _clear_cart(self):
        if self.cart.is_empty:
            return
        if messagebox.askyesno("Clear Cart", "Are you sure you want to clear the cart?"):
            self.cart.clear()
            self._refresh_cart_view()
            self._update_status("Cart cleared")

    def _checkout(self):
        try:
            cash = self._read_cash()
            result = self.sequencer.checkout(self.cart, cash_amount=cash,
                                             customer_email=self.email_var.get().strip())
        except CashierError as e:
            self._show_error("Checkout Error", e)
            return

        txn = result.transaction
        message = f"Transaction #{txn.id} completed successfully"
        if result.change is not None:
            message += f"\nChange due: {self._money(result.change)}"
        try:
            path = self._write_receipt(txn, cash, result.change)
            message += f"\n\nReceipt saved to {path}"
        except OSError as e:
            logger.error("Receipt for transaction %s not written: %s", txn.id, e)
            message += "\n\nReceipt could not be saved"

        self.cash_var.set("")
        self.email_var.set("")
        self._refresh_all()
        messagebox.showinfo("Checkout Complete", message)
        self._update_status(f"Transaction #{txn.id} completed")

    def _write_receipt(self, txn, cash_amount=None, change=None):
        receipt_cfg = self.config.get("receipt", {})
        receipt_dir = receipt_cfg.get("receipt_dir", "receipts")
        os.makedirs(receipt_dir, exist_ok=True)
        if self.receipt_type_var.get() == "pdf":
            path = os.path.join(receipt_dir, f"receipt_{txn.id}.pdf")
            generate_pdf_receipt(txn, path, currency=self.currency, store=receipt_cfg,
                                 cash_amount=cash_amount, change=change)
        else:
            path = os.path.join(receipt_dir, f"receipt_{txn.id}.txt")
            generate_txt_receipt(txn, path, currency=self.currency, store=receipt_cfg,
                                 cash_amount=cash_amount, change=change)
        return path

    # Product admin
    def _refresh_products(self):
        try:
            products = self.db.list_products()
        except CashierError as e:
            self._show_error("Failed to load products", e)
            return
        self.products_tv.delete(*self.products_tv.get_children())
        for p in products:
            self.products_tv.insert("", "end", iid=str(p.id), values=(
                p.id, p.name, p.sku, p.category, self._money(p.price), p.stock_quantity))

    def _clear_form(self):
        self.editing_product_id = None
        for key, var in self.form_vars.items():
            var.set("0" if key == "stock_quantity" else "")
        self.form_frame.config(text="New Product")

    def _edit_selected_product(self):
        selected = self.products_tv.selection()
        if not selected:
            messagebox.showwarning("Warning", "Please select a product to edit")
            return
        product = self.db.get_product(int(selected[0]))
        if product is None:
            self._show_error("Error", "Product not found")
            return
        self.editing_product_id = product.id
        for key, var in self.form_vars.items():
            value = getattr(product, key)
            var.set("" if value is None else str(value))
        self.form_frame.config(text=f"Edit Product #{product.id}")

    def _save_product(self):
        fields = {k: v.get() for k, v in self.form_vars.items()}
        try:
            fields["stock_quantity"] = int(fields["stock_quantity"] or 0)
        except ValueError:
            messagebox.showwarning("Warning", "Stock must be a whole number")
            return
        try:
            if self.editing_product_id is not None:
                self.db.update_product(self.editing_product_id, fields)
                msg = "Product updated successfully"
            else:
                self.db.create_product(fields)
                msg = "Product created successfully"
        except CashierError as e:
            self._show_error("Failed to save product", e)
            return
        self._clear_form()
        self._refresh_all()
        self._update_status(msg)

    def _delete_selected_product(self):
        selected = self.products_tv.selection()
        if not selected:
            messagebox.showwarning("Warning", "Please select a product to delete")
            return
        name = self.products_tv.item(selected[0], 'values')[1]
        if not messagebox.askyesno("Confirm Delete", f"Are you sure you want to delete {name}?"):
            return
        self.db.delete_product(int(selected[0]))
        self._refresh_all()
        self._update_status(f"Product {name} deleted")

    # History and reports
    def _date_range(self):
        return self.date_from_var.get().strip() or None, self.date_to_var.get().strip() or None

    def _refresh_transactions(self):
        date_from, date_to = self._date_range()
        try:
            transactions = self.db.list_transactions(date_from, date_to)
        except ValueError as e:
            self._show_error("Invalid Date", e)
            return

        self.transactions = {str(t.id): t for t in transactions}
        self.history_tv.delete(*self.history_tv.get_children())
        for t in transactions:
            parent = self.history_tv.insert("", "end", iid=str(t.id), text=f"#{t.id}", values=(
                t.created_at, t.customer_email or "", sum(i.quantity for i in t.items),
                self._money(t.total)))
            for item in t.items:
                self.history_tv.insert(parent, "end", text=item.product_name, values=(
                    "", "", item.quantity, self._money(item.line_total)))

        summary = summarize_sales(transactions)
        self.total_sales_var.set(self._money(summary["total_sales"]))
        self.num_trans_var.set(str(summary["num_transactions"]))
        self.avg_sale_var.set(self._money(summary["average_sale"]))
        self.top_products_var.set("\n".join(
            f"{p['product']}: {p['quantity']} sold, {self._money(p['revenue'])}"
            for p in summary["top_products"]) or "None")

    def _print_selected_receipt(self):
        selected = self.history_tv.selection()
        if not selected:
            messagebox.showinfo("Selection", "Please select a transaction")
            return
        # An item row prints its parent transaction
        iid = self.history_tv.parent(selected[0]) or selected[0]
        try:
            path = self._write_receipt(self.transactions[iid])
        except OSError as e:
            self._show_error("Failed to print receipt", e)
            return
        self._update_status(f"Receipt saved to {path}")

    def _export_sales_report(self):
        date_from, date_to = self._date_range()
        file_path = filedialog.asksaveasfilename(
            initialdir=self.config.get("export", {}).get("default_dir", "exports"),
            defaultextension=".csv",
            filetypes=[("CSV files", "*.csv"), ("Excel files", "*.xlsx")])
        if not file_path:
            return
        fmt = "excel" if file_path.lower().endswith(".xlsx") else "csv"
        try:
            df, summary = generate_sales_report(self.db, date_from, date_to, file_path, fmt)
        except (ValueError, OSError) as e:
            self._show_error("Failed to export sales report", e)
            return
        if df is None:
            messagebox.showinfo("Info", summary)
            return
        messagebox.showinfo("Export", f"Sales report exported to {file_path}")
        self._update_status(f"Sales report exported: {file_path}")

    def run(self):
        self.root.mainloop()
