"""
Prompt and canned-message templates.
"""

ANSWER_PROMPT_TEMPLATE = """Based on the following news articles, please answer the user's question. Be accurate, informative, and cite which sources you're using.

Context from recent news articles:
{context}

User Question: {question}

Instructions:
1. Provide a comprehensive answer based only on the provided articles
2. If the articles don't contain enough information, mention this limitation
3. Cite specific sources when making claims
4. Keep the response conversational but informative
5. If multiple articles discuss the same topic, synthesize the information

Answer:"""

CONTEXT_ENTRY_TEMPLATE = "[Source {number}: {source}]\nTitle: {title}\nContent: {content}\n"

CONTEXT_SEPARATOR = "\n---\n"

NO_DOCUMENTS_ANSWER = (
    "I don't have enough information in my current news database to answer "
    "your question. Please try asking about different topics or check back "
    "later for updated news coverage."
)

NO_MATCH_TEMPLATE = """I don't have specific information about "{query}" in my current news database.

My database currently contains {article_count} articles from {sources}, but none are closely related to your query.

To get better results, try asking about:
• Recent political developments
• International news and conflicts
• Technology and business news
• Breaking news stories

You can also try rephrasing your question or asking about broader topics that might be covered in general news."""

APOLOGY_MESSAGE = "I encountered an error while processing your request. Please try again."
