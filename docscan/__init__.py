"""DocScan document-scanning service.

Stores uploaded document images, hands them to an external OCR service,
exports the extracted data to CSV and sells credits through VNPay and
Stripe.
"""

__version__ = "1.0.0"
