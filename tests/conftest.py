import pytest

from fakes import page


@pytest.fixture
def pantry_page():
    """A provider homepage with JSON-LD, contact links and an hours block in the text."""
    return page(
        "https://pantry.example.org/",
        title="Marion Food Pantry | Home",
        social_title="Marion Food Pantry",
        social_description="Free groceries for Salem families.",
        structured_data=[
            {
                "@context": "https://schema.org",
                "@graph": [
                    {
                        "@type": "FoodEstablishment",
                        "name": "Marion Food Pantry",
                        "address": {
                            "streetAddress": "123 Main St",
                            "addressLocality": "Salem",
                            "addressRegion": "OR",
                            "postalCode": "97301",
                        },
                        "geo": {"latitude": "44.94", "longitude": -123.03},
                    }
                ],
            }
        ],
        links=[
            {"href": "tel:+15035550100", "text": "Call us"},
            {"href": "mailto:help@pantry.example.org?subject=Hi", "text": "Email"},
            {"href": "https://pantry.example.org/about", "text": "About"},
            {"href": "https://pantry.example.org/hours", "text": "Hours"},
            {"href": "https://other.example.com/hours", "text": "Partner hours"},
        ],
        text="Welcome to the pantry.\nOur Hours\nMonday\n9am - 5pm\nTuesday: 10:00 - 14:00\nSunday closed",
    )


@pytest.fixture
def bare_page():
    """A homepage with no hours anywhere, linking to its hours page."""
    return page(
        "https://shelter.example.org/",
        title="Harbor Shelter",
        text="Harbor Shelter offers beds and meals. Call anytime!",
        links=[
            {"href": "/contact", "text": "Contact"},
            {"href": "/our-hours", "text": "When we're open"},
            {"href": "/", "text": "Home"},
        ],
    )


@pytest.fixture
def hours_page():
    return page(
        "https://shelter.example.org/our-hours",
        text="Shelter Hours\nMon-Fri 8:00 AM - 6:00 PM",
    )
